"""
Upload transport for the imgpaste client
========================================

Sends one paste payload (inline data URL or remote URL) to the upload
endpoint and parses the JSON result.

Usage:
    async with UploadTransport(base_url="https://wiki.example.org", page_id="wiki:start") as transport:
        media = await transport.upload_inline(data_url)
        print(media.id, media.url)
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp

from . import UploadTransportError
from ._common import DEFAULT_BASE_URL, DEFAULT_CALL_NAME, DEFAULT_ENDPOINT

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadedMedia:
    """Parsed success response of the upload endpoint."""

    message: str
    id: str
    mime: str
    ext: str
    url: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UploadedMedia":
        if not isinstance(data, dict):
            raise UploadTransportError("Upload response is not a JSON object")
        missing = [key for key in ("id", "url") if not data.get(key)]
        if missing:
            raise UploadTransportError(
                f"Upload response lacks {', '.join(missing)}",
                details=data,
            )
        return cls(
            message=str(data.get("message", "")),
            id=str(data["id"]),
            mime=str(data.get("mime", "")),
            ext=str(data.get("ext", "")),
            url=str(data["url"]),
        )


class UploadTransport:
    """
    Asynchronous RPC wrapper around the upload endpoint.

    Or without context manager:
        transport = UploadTransport()
        await transport.connect()
        try:
            media = await transport.upload_remote("https://example.org/cat.png")
        finally:
            await transport.close()
    """

    DEFAULT_TIMEOUT = aiohttp.ClientTimeout(total=60, connect=10)

    def __init__(
        self,
        base_url: Optional[str] = None,
        page_id: str = "",
        *,
        endpoint: str = DEFAULT_ENDPOINT,
        call_name: str = DEFAULT_CALL_NAME,
        timeout: Optional[aiohttp.ClientTimeout] = None,
    ):
        """
        Args:
            base_url: Wiki base URL (default: IMGPASTE_BASE_URL env or http://localhost:8000)
            page_id: Page the uploads belong to, sent as the ``id`` field
            endpoint: Path of the upload endpoint
            call_name: Operation discriminator sent as the ``call`` field
            timeout: Request timeout configuration
        """
        self.base_url = (base_url or os.getenv("IMGPASTE_BASE_URL", DEFAULT_BASE_URL)).rstrip("/")
        self.page_id = page_id
        self.endpoint = endpoint
        self.call_name = call_name
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self._session: Optional[aiohttp.ClientSession] = None

    async def connect(self) -> None:
        """Initialize the HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "UploadTransport":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def session(self) -> aiohttp.ClientSession:
        """Get the active session, raising if not connected."""
        if self._session is None or self._session.closed:
            raise RuntimeError(
                "Transport not connected. Use 'async with UploadTransport()' or call connect()"
            )
        return self._session

    async def upload_inline(self, data_url: str, page_id: Optional[str] = None) -> UploadedMedia:
        """Upload a ``data:<mime>;base64,...`` payload."""
        return await self._post({"data": data_url}, page_id)

    async def upload_remote(self, url: str, page_id: Optional[str] = None) -> UploadedMedia:
        """Ask the server to fetch ``url`` and store a copy."""
        return await self._post({"url": url}, page_id)

    async def _post(self, payload: Dict[str, str], page_id: Optional[str]) -> UploadedMedia:
        form = aiohttp.FormData()
        form.add_field("call", self.call_name)
        form.add_field("id", self.page_id if page_id is None else page_id)
        for name, value in payload.items():
            form.add_field(name, value)

        url = f"{self.base_url}{self.endpoint}"
        try:
            async with self.session.post(url, data=form) as response:
                if response.status != 200:
                    text = await response.text()
                    raise UploadTransportError(
                        self._error_message(text, response.reason, response.status),
                        status_code=response.status,
                    )
                body = await response.read()
        except aiohttp.ClientConnectorError as e:
            raise UploadTransportError(f"Cannot connect to upload endpoint at {self.base_url}") from e
        except asyncio.TimeoutError as e:
            raise UploadTransportError("Upload request timed out") from e
        except aiohttp.ClientError as e:
            raise UploadTransportError(f"Upload request failed: {e}") from e

        try:
            data = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise UploadTransportError("Upload response is not valid JSON", status_code=200) from e
        return UploadedMedia.from_dict(data)

    @staticmethod
    def _error_message(text: str, reason: Optional[str], status: int) -> str:
        """Prefer the server's ``detail`` field, then the raw body, then the reason phrase."""
        if text:
            try:
                parsed = json.loads(text)
            except json.JSONDecodeError:
                return text.strip()
            if isinstance(parsed, dict) and isinstance(parsed.get("detail"), str):
                return parsed["detail"]
            return text.strip()
        return reason or f"HTTP {status}"
