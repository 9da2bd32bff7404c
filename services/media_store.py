"""Filesystem backed media store.

Media ids map onto paths below ``media_dir``: ``wiki:shots:a.png`` is stored
as ``<media_dir>/wiki/shots/a.png``. Every committed object gets one line in
the media changelog.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import time
import uuid
from pathlib import Path
from typing import Optional

import json_utils as json
from config import StoreSettings
from services.acl import AuthLevel
from services.media_ids import NS_SEP, clean_id

logger = logging.getLogger(__name__)

_SVG_SCRIPTING = re.compile(rb"<script|javascript:|\son[a-z]+\s*=", re.IGNORECASE)


class StoreError(Exception):
    """Raised when the store refuses or fails to commit an object."""


def sniff_image_mime(sample: bytes) -> Optional[str]:
    """Identify common image formats from their leading bytes."""
    if not sample:
        return None
    if sample.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if sample.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if sample.startswith((b"GIF87a", b"GIF89a")):
        return "image/gif"
    if sample[:4] == b"RIFF" and sample[8:12] == b"WEBP":
        return "image/webp"
    if sample.startswith(b"BM"):
        return "image/bmp"
    head = sample[:1024].lstrip().lower()
    if head.startswith((b"<?xml", b"<svg", b"<!doctype svg")) and b"<svg" in sample[:4096].lower():
        return "image/svg+xml"
    return None


class FilesystemMediaStore:
    """Durable media repository on the local filesystem."""

    SNIFF_BYTES = 4096
    _CHECKED_MIME_TYPES = frozenset(
        {"image/png", "image/jpeg", "image/gif", "image/webp", "image/bmp", "image/svg+xml"}
    )

    def __init__(self, settings: StoreSettings) -> None:
        self.settings = settings
        self.media_dir = Path(settings.media_dir)
        self.media_dir.mkdir(parents=True, exist_ok=True)
        self.changelog_path = Path(settings.changelog_path)

    def path_for(self, media_id: str) -> Path:
        cleaned = clean_id(media_id)
        if not cleaned or cleaned != media_id.strip(NS_SEP):
            raise StoreError(f"Invalid media id: {media_id!r}")
        return self.media_dir.joinpath(*cleaned.split(NS_SEP))

    def exists(self, media_id: str) -> bool:
        return self.path_for(media_id).is_file()

    def url_for(self, media_id: str) -> str:
        return f"{self.settings.base_url}{self.settings.media_url_prefix}{media_id}"

    def save(
        self,
        staged_path: Path,
        media_id: str,
        *,
        mime_type: str,
        extension: str,
        auth_level: int,
        user: str = "",
    ) -> str:
        """Copy a staged file into the store and return the committed id.

        Existing objects are never overwritten. The staged file is left in
        place; its owner removes it.
        """
        if auth_level < AuthLevel.UPLOAD:
            raise StoreError("You don't have enough permissions to upload here")
        if not media_id.endswith(f".{extension}"):
            raise StoreError(f"The file extension does not match {extension}")

        target = self.path_for(media_id)
        if target.exists():
            raise StoreError("File already exists. Nothing done.")

        self._check_content(staged_path, mime_type, extension)

        tmp_target = target.with_name(f".{target.name}.{uuid.uuid4().hex}.part")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(staged_path, tmp_target)
            if target.exists():
                raise StoreError("File already exists. Nothing done.")
            os.replace(tmp_target, target)
        except OSError as exc:
            raise StoreError(f"Upload failed. Maybe wrong permissions? ({exc.strerror or exc})") from exc
        finally:
            tmp_target.unlink(missing_ok=True)

        size = target.stat().st_size
        self._log_change(media_id=media_id, user=user, mime_type=mime_type, size=size)
        logger.info("Stored media %s (%d bytes, %s)", media_id, size, mime_type)
        return media_id

    def _check_content(self, staged_path: Path, mime_type: str, extension: str) -> None:
        if mime_type not in self._CHECKED_MIME_TYPES:
            return
        with staged_path.open("rb") as fh:
            sample = fh.read(self.SNIFF_BYTES)
        detected = sniff_image_mime(sample)
        if detected != mime_type:
            raise StoreError(f"The uploaded content did not match the {extension} file extension.")
        if detected == "image/svg+xml" and _SVG_SCRIPTING.search(staged_path.read_bytes()):
            raise StoreError("The uploaded file contains scripting and was rejected.")

    def _log_change(self, *, media_id: str, user: str, mime_type: str, size: int) -> None:
        entry = {
            "date": int(time.time()),
            "id": media_id,
            "type": "C",
            "user": user,
            "mime": mime_type,
            "size": size,
        }
        try:
            self.changelog_path.parent.mkdir(parents=True, exist_ok=True)
            with self.changelog_path.open("a", encoding="utf-8") as fh:
                json.dump_line(entry, fh)
        except OSError as exc:
            # The object itself is committed; a missing changelog line is not fatal
            logger.error("Unable to append media changelog %s: %s", self.changelog_path, exc)
