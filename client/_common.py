"""
Shared helpers for the imgpaste client.

Constants, data URL encoding and media id arithmetic used by the
transport, the HTML rehoster and the clipboard capture.
No HTTP calls are made from this module.
"""

from __future__ import annotations

import base64
import re

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_ENDPOINT = "/lib/exe/ajax.php"
DEFAULT_CALL_NAME = "plugin_imgpaste"

NS_SEP = ":"

IN_PROGRESS_TEXT = "Upload in progress..."

_HTTP_URL = re.compile(r"^https?://", re.IGNORECASE)


def to_data_url(data: bytes, mime_type: str) -> str:
    """Encode raw bytes as ``data:<mime>;base64,<payload>``."""
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{(mime_type or 'application/octet-stream').lower()};base64,{encoded}"


def is_data_url(value: str) -> bool:
    return (value or "").strip().lower().startswith("data:")


def is_remote_url(value: str) -> bool:
    return bool(_HTTP_URL.match((value or "").strip()))


def _namespace(media_id: str) -> str:
    ns, sep, _ = media_id.rpartition(NS_SEP)
    return ns if sep else ""


def relative_media_id(page_id: str, media_id: str) -> str:
    """Express ``media_id`` relative to the namespace of ``page_id``.

    Same namespace gives the bare local name, a sub-namespace gives
    ``.:sub:name`` and anything else is made absolute with a leading colon.
    """
    media_id = (media_id or "").strip(NS_SEP)
    page_ns = _namespace((page_id or "").strip(NS_SEP))
    media_ns = _namespace(media_id)
    if media_ns == page_ns:
        return media_id.rpartition(NS_SEP)[2]
    if page_ns and media_ns.startswith(page_ns + NS_SEP):
        return "." + NS_SEP + media_id[len(page_ns) + 1:]
    return NS_SEP + media_id
