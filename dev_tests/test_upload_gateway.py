"""
Tests for services/upload_gateway.py - the end-to-end upload pipeline.

Tests cover:
- Inline and remote uploads producing a stored media object
- Name deduplication against the store
- Failure mapping for every pipeline stage
- Staging area cleanup on success and failure
"""

import base64
import logging
from unittest.mock import MagicMock

import httpx
import pytest

from models import FailureKind, UploadContext
from services.acl import AuthLevel
from services.content_decoder import InlineData, RemoteReference, parse_data_url
from services.errors import PermissionDenied, UnsupportedMimeType
from services.upload_gateway import SUCCESS_MESSAGE, staging_area

EXPECTED_ID = "wiki:20240102-030405.png"


def _stored_files(media_store):
    return sorted(p.name for p in media_store.media_dir.rglob("*") if p.is_file())


# ============================================================================
# Staging Area
# ============================================================================

class TestStagingArea:

    def test_removed_after_block(self, staging_root):
        with staging_area(b"abc", tmp_root=str(staging_root)) as staged:
            assert staged.read_bytes() == b"abc"
            assert staged.parent.parent == staging_root
        assert list(staging_root.iterdir()) == []

    def test_removed_when_block_raises(self, staging_root):
        with pytest.raises(RuntimeError):
            with staging_area(b"abc", tmp_root=str(staging_root)):
                raise RuntimeError("boom")
        assert list(staging_root.iterdir()) == []


# ============================================================================
# Successful Uploads
# ============================================================================

class TestSuccessfulUploads:

    @pytest.mark.asyncio
    async def test_inline_png(self, make_gateway, upload_context, png_data_url, png_bytes, media_store, staging_root):
        gateway = make_gateway()

        result = await gateway.handle(parse_data_url(png_data_url), upload_context)

        assert result.message == SUCCESS_MESSAGE
        assert result.id == EXPECTED_ID
        assert result.mime_type == "image/png"
        assert result.extension == "png"
        assert result.url == f"https://wiki.example.org/_media/{EXPECTED_ID}"
        assert result.to_wire() == {
            "message": SUCCESS_MESSAGE,
            "id": EXPECTED_ID,
            "mime": "image/png",
            "ext": "png",
            "url": f"https://wiki.example.org/_media/{EXPECTED_ID}",
        }
        assert media_store.path_for(EXPECTED_ID).read_bytes() == png_bytes
        assert list(staging_root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_jpeg_uses_mapped_extension(self, make_gateway, upload_context, jpeg_bytes):
        source = InlineData(mime_hint="image/jpeg", encoded_bytes=base64.b64encode(jpeg_bytes).decode("ascii"))
        result = await make_gateway().handle(source, upload_context)
        assert result.id == "wiki:20240102-030405.jpg"
        assert result.extension == "jpg"

    @pytest.mark.asyncio
    async def test_second_upload_gets_suffix(self, make_gateway, upload_context, png_data_url):
        gateway = make_gateway()

        first = await gateway.handle(parse_data_url(png_data_url), upload_context)
        second = await gateway.handle(parse_data_url(png_data_url), upload_context)

        assert first.id == EXPECTED_ID
        assert second.id == "wiki:20240102-0304051.png"

    @pytest.mark.asyncio
    async def test_remote_reference(self, make_gateway, upload_context, png_bytes):
        def handler(request):
            return httpx.Response(200, content=png_bytes, headers={"Content-Type": "image/png"})

        gateway = make_gateway(transport=httpx.MockTransport(handler))
        result = await gateway.handle(RemoteReference(url="https://ext.example.com/cat.png"), upload_context)

        assert result.id == EXPECTED_ID
        assert result.mime_type == "image/png"

    @pytest.mark.asyncio
    async def test_remote_jpeg(self, make_gateway, upload_context, jpeg_bytes, media_store):
        def handler(request):
            return httpx.Response(200, content=jpeg_bytes, headers={"Content-Type": "image/jpeg"})

        gateway = make_gateway(transport=httpx.MockTransport(handler))
        result = await gateway.handle(RemoteReference(url="https://ext.example.com/photo"), upload_context)

        assert result.id == "wiki:20240102-030405.jpg"
        assert result.extension == "jpg"
        assert result.mime_type == "image/jpeg"
        assert media_store.path_for(result.id).read_bytes() == jpeg_bytes

    @pytest.mark.asyncio
    async def test_auth_checks_exact_candidate(self, make_gateway, upload_context, png_data_url):
        evaluator = MagicMock()
        evaluator.level_for.return_value = AuthLevel.UPLOAD
        gateway = make_gateway(evaluator=evaluator)

        await gateway.handle(parse_data_url(png_data_url), upload_context)

        evaluator.level_for.assert_called_once_with(EXPECTED_ID, "alice")

    @pytest.mark.asyncio
    async def test_try_handle_success(self, make_gateway, upload_context, png_data_url):
        outcome = await make_gateway().try_handle(parse_data_url(png_data_url), upload_context)
        assert outcome.ok
        assert outcome.failure is None
        assert outcome.result.id == EXPECTED_ID


# ============================================================================
# Failures
# ============================================================================

class TestFailures:

    @pytest.mark.asyncio
    async def test_unsupported_mime(self, make_gateway, upload_context, media_store, staging_root):
        source = parse_data_url("data:text/plain;base64,aGVsbG8=")

        outcome = await make_gateway().try_handle(source, upload_context)

        assert not outcome.ok
        assert outcome.failure.kind == FailureKind.UNSUPPORTED_MIME_TYPE
        assert outcome.failure.status_code == 415
        assert "text/plain" in outcome.failure.message
        assert _stored_files(media_store) == []
        assert list(staging_root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_unsupported_mime_raises_from_handle(self, make_gateway, upload_context):
        with pytest.raises(UnsupportedMimeType):
            await make_gateway().handle(parse_data_url("data:text/html;base64,PGI+"), upload_context)

    @pytest.mark.asyncio
    async def test_malformed_payload(self, make_gateway, upload_context):
        outcome = await make_gateway().try_handle(parse_data_url("data:image/png;base64,"), upload_context)
        assert outcome.failure.kind == FailureKind.MALFORMED_PAYLOAD
        assert outcome.failure.status_code == 400

    @pytest.mark.asyncio
    async def test_permission_denied(self, make_gateway, upload_context, png_data_url, media_store, staging_root):
        gateway = make_gateway(acl_lines=["* @ALL 2"])

        outcome = await gateway.try_handle(parse_data_url(png_data_url), upload_context)

        assert outcome.failure.kind == FailureKind.PERMISSION_DENIED
        assert outcome.failure.status_code == 403
        assert outcome.failure.message == f"Upload to {EXPECTED_ID} not permitted"
        assert _stored_files(media_store) == []
        assert list(staging_root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_permission_denied_raises_from_handle(self, make_gateway, upload_context, png_data_url):
        with pytest.raises(PermissionDenied):
            await make_gateway(acl_lines=["* @ALL 0"]).handle(parse_data_url(png_data_url), upload_context)

    @pytest.mark.asyncio
    async def test_remote_fetch_failure(self, make_gateway, upload_context):
        gateway = make_gateway(transport=httpx.MockTransport(lambda request: httpx.Response(404)))

        outcome = await gateway.try_handle(RemoteReference(url="https://ext.example.com/x.png"), upload_context)

        assert outcome.failure.kind == FailureKind.REMOTE_FETCH_FAILURE
        assert outcome.failure.status_code == 500
        assert outcome.failure.message == "URL responded with HTTP 404"

    @pytest.mark.asyncio
    async def test_content_mismatch_is_storage_failure(
        self, make_gateway, upload_context, jpeg_bytes, media_store, staging_root
    ):
        source = InlineData(mime_hint="image/png", encoded_bytes=base64.b64encode(jpeg_bytes).decode("ascii"))

        outcome = await make_gateway().try_handle(source, upload_context)

        assert outcome.failure.kind == FailureKind.STORAGE_FAILURE
        assert outcome.failure.status_code == 500
        assert "did not match" in outcome.failure.message
        assert _stored_files(media_store) == []
        assert list(staging_root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_empty_name_is_storage_failure(self, make_gateway, png_data_url):
        context = UploadContext(context_page_id="wiki:start", acting_user="")
        outcome = await make_gateway(template="{USER}").try_handle(parse_data_url(png_data_url), context)
        assert outcome.failure.kind == FailureKind.STORAGE_FAILURE
        assert "empty name" in outcome.failure.message

    @pytest.mark.asyncio
    async def test_staging_failure(self, make_gateway, upload_context, png_data_url, staging_root):
        gateway = make_gateway()
        gateway.tmp_root = str(staging_root / "missing")

        outcome = await gateway.try_handle(parse_data_url(png_data_url), upload_context)

        assert outcome.failure.kind == FailureKind.TEMP_IO_FAILURE
        assert outcome.failure.status_code == 500

    @pytest.mark.asyncio
    async def test_lost_naming_race_is_storage_failure(
        self, make_gateway, upload_context, png_data_url, png_bytes, media_store
    ):
        gateway = make_gateway()
        original_check = gateway.auth_gate.check

        def racing_check(candidate, context):
            # Another request commits the same name between probe and write
            target = media_store.path_for(candidate)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(png_bytes)
            return original_check(candidate, context)

        gateway.auth_gate.check = racing_check

        outcome = await gateway.try_handle(parse_data_url(png_data_url), upload_context)

        assert outcome.failure.kind == FailureKind.STORAGE_FAILURE
        assert outcome.failure.message == "File already exists. Nothing done."


# ============================================================================
# Phase Logging
# ============================================================================

class TestPhaseLogging:

    @pytest.mark.asyncio
    async def test_every_phase_is_logged(self, make_gateway, upload_context, png_data_url, caplog):
        gateway = make_gateway()
        gateway.verbose = True

        with caplog.at_level(logging.DEBUG, logger="services.upload_gateway"):
            await gateway.handle(parse_data_url(png_data_url), upload_context)

        for header in ("[DEC] DECODE", "[VAL] VALIDATE", "[TMP] STAGE", "[NAM] NAMING",
                       "[ACL] AUTH", "[STO] STORE", "[OK ] COMPLETE"):
            assert header in caplog.text
        assert "Staged " in caplog.text
        assert "STORED" in caplog.text
        assert "COMPLETE=" in caplog.text

    @pytest.mark.asyncio
    async def test_failure_reports_phase(self, make_gateway, upload_context, png_data_url, caplog):
        gateway = make_gateway(acl_lines=("* @ALL 1",))

        with caplog.at_level(logging.INFO, logger="services.upload_gateway"):
            outcome = await gateway.try_handle(parse_data_url(png_data_url), upload_context)

        assert outcome.failure is not None
        assert "during AUTH" in caplog.text
        assert "COMPLETE" not in caplog.text
