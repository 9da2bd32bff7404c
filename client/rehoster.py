"""
Rehost images embedded in pasted HTML.

Every external or inline-data ``<img>`` found in a pasted fragment is sent
to the upload endpoint concurrently. Images that were stored successfully
are rewritten to point at the wiki copy; images whose upload failed keep
their original source.
"""

from __future__ import annotations

import asyncio
import html as html_lib
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from lxml import html
from lxml.etree import ParserError

from ._common import is_data_url, is_remote_url, relative_media_id
from .transport import UploadedMedia, UploadTransport

logger = logging.getLogger(__name__)

INLINE = "inline"
REMOTE = "remote"


@dataclass(frozen=True)
class RehostOutcome:
    """Result of one image upload attempt."""

    source: str
    media: Optional[UploadedMedia] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.media is not None


class HtmlRehoster:
    def __init__(self, transport: UploadTransport, *, page_id: str, base_url: str = "") -> None:
        self.transport = transport
        self.page_id = page_id
        self.base_url = (base_url or "").rstrip("/")

    def classify(self, img) -> Optional[str]:
        """Return ``inline``, ``remote`` or None when the image stays as is."""
        src = (img.get("src") or "").strip()
        if not src:
            return None
        if img.get("data-relid") and "media" in (img.get("class") or "").split():
            return None
        if is_data_url(src):
            return INLINE
        if not is_remote_url(src):
            return None
        if self.base_url and src.startswith(self.base_url + "/"):
            return None
        return REMOTE

    async def rehost(self, markup: str) -> str:
        fragment, _ = await self.rehost_fragment(markup)
        if fragment is None:
            return ""
        return self.serialize(fragment)

    async def rehost_fragment(self, markup: str) -> Tuple[Optional[html.HtmlElement], List[RehostOutcome]]:
        """Parse ``markup``, rehost its images and return the fragment plus per-image outcomes."""
        if not markup or not markup.strip():
            return None, []
        try:
            fragment = html.fragment_fromstring(markup, create_parent="div")
        except ParserError as exc:
            logger.warning("Unable to parse pasted HTML: %s", exc)
            return None, []

        targets = []
        for img in fragment.iter("img"):
            kind = self.classify(img)
            if kind is not None:
                targets.append((img, kind))

        results = await asyncio.gather(
            *(self._upload(img, kind) for img, kind in targets),
            return_exceptions=True,
        )

        outcomes: List[RehostOutcome] = []
        for (img, _), result in zip(targets, results):
            source = img.get("src")
            if isinstance(result, BaseException):
                logger.warning("Keeping original image %s: %s", self._describe(source), result)
                outcomes.append(RehostOutcome(source=source, error=result))
                continue
            self._rewrite(img, result)
            outcomes.append(RehostOutcome(source=source, media=result))
        return fragment, outcomes

    async def _upload(self, img, kind: str) -> UploadedMedia:
        src = img.get("src").strip()
        if kind == INLINE:
            return await self.transport.upload_inline(src, self.page_id)
        return await self.transport.upload_remote(src, self.page_id)

    def _rewrite(self, img, media: UploadedMedia) -> None:
        img.set("src", media.url)
        img.set("class", "media")
        img.set("data-relid", relative_media_id(self.page_id, media.id))

    @staticmethod
    def serialize(fragment) -> str:
        """Inner HTML of the wrapper element."""
        parts = [html_lib.escape(fragment.text, quote=False) if fragment.text else ""]
        for child in fragment:
            parts.append(html.tostring(child, encoding="unicode"))
        return "".join(parts)

    @staticmethod
    def _describe(source: Optional[str]) -> str:
        if source and is_data_url(source):
            return source[:40] + "..."
        return source or "<empty>"
