"""
Tests for services/media_store.py - filesystem media store.
"""

import json

import pytest

from services.acl import AuthLevel
from services.media_store import StoreError, sniff_image_mime


@pytest.fixture
def staged_png(tmp_path, png_bytes):
    path = tmp_path / "staged.png"
    path.write_bytes(png_bytes)
    return path


def _save(store, staged, media_id="wiki:a.png", **overrides):
    kwargs = dict(mime_type="image/png", extension="png", auth_level=AuthLevel.UPLOAD, user="alice")
    kwargs.update(overrides)
    return store.save(staged, media_id, **kwargs)


class TestSniffImageMime:

    @pytest.mark.parametrize(
        "sample, expected",
        [
            (b"\x89PNG\r\n\x1a\n....", "image/png"),
            (b"\xff\xd8\xff\xe0....", "image/jpeg"),
            (b"GIF89a....", "image/gif"),
            (b"RIFF\x00\x00\x00\x00WEBPVP8 ", "image/webp"),
            (b"BM\x00\x00", "image/bmp"),
            (b'<?xml version="1.0"?><svg xmlns="http://www.w3.org/2000/svg"/>', "image/svg+xml"),
            (b"  <svg></svg>", "image/svg+xml"),
            (b"hello world", None),
            (b"", None),
        ],
    )
    def test_sniff(self, sample, expected):
        assert sniff_image_mime(sample) == expected


class TestPaths:

    def test_namespaces_map_to_directories(self, media_store, store_settings):
        assert media_store.path_for("wiki:shots:a.png").parts[-3:] == ("wiki", "shots", "a.png")

    @pytest.mark.parametrize("media_id", ["../etc/passwd", "wiki:A.png", "", "wiki:a b.png"])
    def test_unclean_ids_are_rejected(self, media_store, media_id):
        with pytest.raises(StoreError):
            media_store.path_for(media_id)

    def test_url_for(self, media_store):
        assert media_store.url_for("wiki:a.png") == "https://wiki.example.org/_media/wiki:a.png"


class TestSave:

    def test_commits_file_and_changelog(self, media_store, store_settings, staged_png, png_bytes):
        assert not media_store.exists("wiki:a.png")

        assert _save(media_store, staged_png) == "wiki:a.png"

        assert media_store.exists("wiki:a.png")
        assert media_store.path_for("wiki:a.png").read_bytes() == png_bytes
        assert staged_png.exists()

        with open(store_settings.changelog_path, encoding="utf-8") as fh:
            entries = [json.loads(line) for line in fh]
        assert len(entries) == 1
        assert entries[0]["id"] == "wiki:a.png"
        assert entries[0]["type"] == "C"
        assert entries[0]["user"] == "alice"
        assert entries[0]["mime"] == "image/png"
        assert entries[0]["size"] == len(png_bytes)

    def test_never_overwrites(self, media_store, staged_png, tmp_path, png_bytes):
        _save(media_store, staged_png)
        other = tmp_path / "other.png"
        other.write_bytes(png_bytes + b"trailing")

        with pytest.raises(StoreError, match="File already exists"):
            _save(media_store, other)
        assert media_store.path_for("wiki:a.png").read_bytes() == png_bytes

    def test_requires_upload_level(self, media_store, staged_png):
        with pytest.raises(StoreError, match="permissions"):
            _save(media_store, staged_png, auth_level=AuthLevel.EDIT)
        assert not media_store.exists("wiki:a.png")

    def test_id_must_carry_extension(self, media_store, staged_png):
        with pytest.raises(StoreError, match="extension"):
            _save(media_store, staged_png, media_id="wiki:a.jpg")

    def test_content_must_match_mime(self, media_store, tmp_path, jpeg_bytes):
        staged = tmp_path / "staged"
        staged.write_bytes(jpeg_bytes)
        with pytest.raises(StoreError, match="did not match the png file extension"):
            _save(media_store, staged)
        assert not media_store.exists("wiki:a.png")

    def test_svg_with_script_is_rejected(self, media_store, tmp_path):
        staged = tmp_path / "staged.svg"
        staged.write_bytes(b'<svg xmlns="http://www.w3.org/2000/svg"><script>alert(1)</script></svg>')
        with pytest.raises(StoreError, match="scripting"):
            _save(media_store, staged, media_id="wiki:a.svg", mime_type="image/svg+xml", extension="svg")

    def test_plain_svg_is_stored(self, media_store, tmp_path):
        staged = tmp_path / "staged.svg"
        staged.write_bytes(b'<svg xmlns="http://www.w3.org/2000/svg"><rect width="1" height="1"/></svg>')
        assert _save(
            media_store, staged, media_id="wiki:a.svg", mime_type="image/svg+xml", extension="svg"
        ) == "wiki:a.svg"

    def test_unchecked_mime_skips_sniffing(self, media_store, tmp_path):
        staged = tmp_path / "staged.ico"
        staged.write_bytes(b"\x00\x00\x01\x00icon")
        assert _save(
            media_store, staged, media_id="wiki:a.ico", mime_type="image/x-icon", extension="ico"
        ) == "wiki:a.ico"

    def test_changelog_failure_keeps_object(self, media_store, store_settings, staged_png, tmp_path):
        changelog = tmp_path / "meta" / "media_changes.jsonl"
        changelog.mkdir(parents=True)

        assert _save(media_store, staged_png) == "wiki:a.png"
        assert media_store.exists("wiki:a.png")

    def test_no_part_files_left_behind(self, media_store, staged_png):
        _save(media_store, staged_png)
        leftovers = [p.name for p in media_store.path_for("wiki:a.png").parent.iterdir()]
        assert leftovers == ["a.png"]
