"""
imgpaste Client
===============

Client side of the paste-to-media pipeline: capture pasted or dropped
content, rehost images embedded in pasted HTML and insert media references
into the editing surface.

Quick Start:
    from client import ClipboardCapture, PasteEvent, PasteItem, RichTextSurface, UploadTransport

    surface = RichTextSurface(page_id="wiki:start")
    async with UploadTransport(base_url="https://wiki.example.org", page_id="wiki:start") as transport:
        capture = ClipboardCapture(transport, surface, base_url="https://wiki.example.org")
        await capture.handle_paste(PasteEvent(items=[PasteItem("file", "image/png", png_bytes)]))
"""

from typing import Any, Dict, Optional


class UploadTransportError(Exception):
    """Exception raised when an upload request fails."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details or {}


from .transport import UploadedMedia, UploadTransport  # noqa: E402
from .rehoster import HtmlRehoster, RehostOutcome  # noqa: E402
from .editor import NoticeBoard, PlainTextSurface, ProgressNotice, RichTextSurface  # noqa: E402
from .capture import ClipboardCapture, PasteEvent, PasteItem, PasteState  # noqa: E402

__all__ = [
    "UploadTransportError",
    "UploadTransport",
    "UploadedMedia",
    "HtmlRehoster",
    "RehostOutcome",
    "ClipboardCapture",
    "PasteEvent",
    "PasteItem",
    "PasteState",
    "NoticeBoard",
    "ProgressNotice",
    "PlainTextSurface",
    "RichTextSurface",
]

__version__ = "1.0.0"
