"""
Clipboard and drop capture for the imgpaste client.

Classifies a paste or drop event and routes it: HTML on a rich-text
surface goes through the rehoster, file items are uploaded one by one and
inserted as media references.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

from . import UploadTransportError
from ._common import IN_PROGRESS_TEXT, relative_media_id, to_data_url
from .editor import EditingSurface, ProgressNotice
from .rehoster import HtmlRehoster
from .transport import UploadedMedia, UploadTransport

logger = logging.getLogger(__name__)


class PasteState(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    REHOSTING = "rehosting"
    SINGLE_UPLOADING = "single_uploading"
    INSERTING = "inserting"


@dataclass
class PasteItem:
    """One clipboard or drop entry; ``kind`` is ``string`` or ``file``."""

    kind: str
    type: str
    data: Union[str, bytes]


@dataclass
class PasteEvent:
    items: List[PasteItem] = field(default_factory=list)
    default_prevented: bool = False

    def prevent_default(self) -> None:
        self.default_prevented = True


class ClipboardCapture:
    """
    Route paste and drop events on an editing surface to the upload endpoint.

    Usage:
        capture = ClipboardCapture(transport, surface, base_url="https://wiki.example.org")
        handled = await capture.handle_paste(event)
    """

    def __init__(
        self,
        transport: UploadTransport,
        surface: Optional[EditingSurface],
        *,
        base_url: str = "",
        notice_linger_seconds: float = 1.0,
    ) -> None:
        self.transport = transport
        self.surface = surface
        self.base_url = base_url
        self.notice_linger_seconds = notice_linger_seconds
        self.state = PasteState.IDLE

    async def handle_paste(self, event: PasteEvent) -> bool:
        """Process ``event``; returns True when default handling was suppressed."""
        surface = self.surface
        if surface is None or not surface.is_attached or not event.items:
            return False

        self.state = PasteState.CAPTURING
        try:
            if surface.is_rich_text:
                html_item = next(
                    (item for item in event.items if item.kind == "string" and item.type == "text/html"),
                    None,
                )
                if html_item is not None:
                    event.prevent_default()
                    await self._paste_html(surface, str(html_item.data))
                    return True

            files = [item for item in event.items if item.kind == "file"]
            if not files:
                return False
            event.prevent_default()
            await self._paste_files(surface, files)
            return True
        finally:
            self.state = PasteState.IDLE

    handle_drop = handle_paste

    async def _paste_html(self, surface: EditingSurface, markup: str) -> None:
        self.state = PasteState.REHOSTING
        notice = surface.notices.open(IN_PROGRESS_TEXT)
        rehoster = HtmlRehoster(self.transport, page_id=surface.page_id, base_url=self.base_url)
        try:
            rewritten = await rehoster.rehost(markup)
        finally:
            notice.dismiss()

        self.state = PasteState.INSERTING
        if not surface.is_attached:
            logger.info("Editing surface went away, discarding pasted HTML")
            return
        surface.insert_fragment(rewritten)

    async def _paste_files(self, surface: EditingSurface, files: List[PasteItem]) -> None:
        self.state = PasteState.SINGLE_UPLOADING
        uploaded = await asyncio.gather(*(self._upload_file(surface, item) for item in files))

        self.state = PasteState.INSERTING
        if not surface.is_attached:
            logger.info("Editing surface went away, discarding %d uploads", len(files))
            return
        for media in uploaded:
            if media is not None:
                surface.insert_reference(relative_media_id(surface.page_id, media.id))

    async def _upload_file(self, surface: EditingSurface, item: PasteItem) -> Optional[UploadedMedia]:
        notice = surface.notices.open(IN_PROGRESS_TEXT)
        payload = item.data if isinstance(item.data, bytes) else str(item.data).encode("utf-8")
        try:
            media = await self.transport.upload_inline(to_data_url(payload, item.type), surface.page_id)
        except UploadTransportError as exc:
            logger.error("Upload of pasted %s failed: %s", item.type or "file", exc)
            notice.fail(str(exc))
            self._linger(notice)
            return None
        except Exception as exc:
            logger.exception("Unexpected error uploading pasted %s", item.type or "file")
            notice.fail(f"Upload failed: {exc}")
            self._linger(notice)
            return None
        notice.succeed(media.message)
        self._linger(notice)
        return media

    def _linger(self, notice: ProgressNotice) -> None:
        if self.notice_linger_seconds <= 0:
            notice.dismiss()
            return
        asyncio.get_running_loop().call_later(self.notice_linger_seconds, notice.dismiss)
