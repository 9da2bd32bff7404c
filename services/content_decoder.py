"""Normalize inbound paste payloads into raw bytes plus a MIME type."""

from __future__ import annotations

import asyncio
import base64
import binascii
import ipaddress
import logging
import socket
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Union
from urllib.parse import ParseResult, urljoin, urlparse

import httpx

from config import UploadSettings
from services.errors import MalformedPayload, RemoteFetchFailure

logger = logging.getLogger(__name__)

HostResolver = Callable[[str, int], Awaitable[List[str]]]

_REDIRECT_STATUS_CODES = {301, 302, 303, 307, 308}
_ALLOWED_PORTS: Dict[str, int] = {"http": 80, "https": 443}

_DENIED_NETWORKS = tuple(
    ipaddress.ip_network(cidr)
    for cidr in (
        "0.0.0.0/8",
        "10.0.0.0/8",
        "100.64.0.0/10",
        "127.0.0.0/8",
        "169.254.0.0/16",
        "172.16.0.0/12",
        "192.0.0.0/24",
        "192.0.2.0/24",
        "192.168.0.0/16",
        "198.18.0.0/15",
        "198.51.100.0/24",
        "203.0.113.0/24",
        "224.0.0.0/4",
        "240.0.0.0/4",
        "100.100.100.200/32",
        "::/128",
        "::1/128",
        "fe80::/10",
        "fc00::/7",
        "ff00::/8",
        "2001:db8::/32",
    )
)


@dataclass(frozen=True)
class InlineData:
    """Payload embedded in the request as ``data:<mime>;base64,<bytes>``."""

    mime_hint: str
    encoded_bytes: str


@dataclass(frozen=True)
class RemoteReference:
    """Payload hosted elsewhere that has to be downloaded first."""

    url: str


PayloadSource = Union[InlineData, RemoteReference]


@dataclass(frozen=True)
class ContentPayload:
    """Decoded bytes and the MIME type they were declared as."""

    data: bytes
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.data)


def parse_data_url(value: str) -> InlineData:
    """Split a data URL into its media type and encoded body.

    The media type prefix is everything before the first ``;`` with the
    ``data:`` scheme removed. The encoding prefix (``base64,``) is stripped
    from the remainder. A missing separator leaves the body empty so that
    decoding reports the payload as malformed.
    """
    head, sep, tail = (value or "").partition(";")
    if not sep:
        return InlineData(mime_hint="", encoded_bytes="")
    mime = head.strip()
    if mime.lower().startswith("data:"):
        mime = mime[5:]
    _, comma, body = tail.partition(",")
    return InlineData(mime_hint=mime.strip().lower(), encoded_bytes=body if comma else "")


async def resolve_host(hostname: str, port: int) -> List[str]:
    """Resolve ``hostname`` through the event loop's getaddrinfo."""
    loop = asyncio.get_running_loop()
    try:
        addr_info = await loop.getaddrinfo(hostname, port, type=socket.SOCK_STREAM)
    except socket.gaierror as exc:
        raise RemoteFetchFailure("Unable to resolve URL hostname") from exc
    return [sockaddr[0] for _, _, _, _, sockaddr in addr_info]


class ContentDecoder:
    """Turn a ``PayloadSource`` into a ``ContentPayload``.

    No MIME validation happens here; both paths share the allow-list check
    performed by the gateway after decoding.

    Remote fetches only reach public addresses. Every hop (the first URL and
    each redirect target) is validated, resolved and pinned to the checked IP
    before the request goes out.
    """

    def __init__(
        self,
        *,
        settings: UploadSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        resolver: Optional[HostResolver] = None,
    ) -> None:
        self.settings = settings
        self._transport = transport
        self._resolver = resolver or resolve_host

    async def decode(self, source: PayloadSource) -> ContentPayload:
        if isinstance(source, InlineData):
            return self.decode_inline(source)
        if isinstance(source, RemoteReference):
            return await self.fetch_remote(source)
        raise TypeError(f"Unsupported payload source: {type(source).__name__}")

    def decode_inline(self, source: InlineData) -> ContentPayload:
        body = (source.encoded_bytes or "").strip()
        if not body:
            raise MalformedPayload("No data was sent")

        # Base64 expands data by ~4/3; reject before allocating the decoded copy
        estimated_size = len(body) * 3 // 4
        if estimated_size > self.settings.max_size_bytes:
            raise MalformedPayload(
                f"Payload too large: estimated {estimated_size} bytes exceeds limit of "
                f"{self.settings.max_size_bytes} bytes"
            )
        try:
            data = base64.b64decode(body, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise MalformedPayload("Invalid base64 payload") from exc
        if not data:
            raise MalformedPayload("No data was sent")
        return ContentPayload(data=data, mime_type=(source.mime_hint or "").lower())

    async def fetch_remote(self, source: RemoteReference) -> ContentPayload:
        current_url = (source.url or "").strip()
        if not current_url:
            raise RemoteFetchFailure("URL is required for remote rehosting")

        timeout = httpx.Timeout(
            timeout=self.settings.url_timeout_seconds,
            connect=self.settings.url_connect_timeout_seconds,
        )
        headers = {"User-Agent": self.settings.url_user_agent}
        redirects = 0

        async with httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=False,
            trust_env=False,
            transport=self._transport,
        ) as client:
            try:
                while True:
                    parsed = self._validate_url(current_url)
                    port = self._determine_port(parsed)
                    response = await self._send_pinned_request(
                        client,
                        url=current_url,
                        hostname=parsed.hostname,
                        port=port,
                        headers=headers,
                    )
                    try:
                        if response.status_code in _REDIRECT_STATUS_CODES:
                            location = response.headers.get("location")
                            if not location:
                                raise RemoteFetchFailure("Redirect response missing Location header")
                            redirects += 1
                            if redirects > self.settings.url_max_redirects:
                                raise RemoteFetchFailure("Too many redirects while fetching remote image")
                            current_url = urljoin(current_url, location)
                            continue
                        if response.status_code != 200:
                            raise RemoteFetchFailure(f"URL responded with HTTP {response.status_code}")
                        mime_type = self._extract_declared_mime(response)
                        data = await self._read_limited(response)
                    finally:
                        await response.aclose()
                    break
            except httpx.HTTPError as exc:
                raise RemoteFetchFailure(f"Unable to fetch remote image: {exc}") from exc

        if not data:
            raise RemoteFetchFailure("Remote image is empty")
        logger.info("Fetched %d bytes (%s) from %s", len(data), mime_type or "unknown", current_url)
        return ContentPayload(data=data, mime_type=mime_type)

    async def _read_limited(self, response: httpx.Response) -> bytes:
        buffer = bytearray()
        async for chunk in response.aiter_bytes():
            buffer.extend(chunk)
            if len(buffer) > self.settings.max_size_bytes:
                raise RemoteFetchFailure(
                    f"Remote image exceeds allowed size of {self.settings.max_size_bytes} bytes"
                )
        return bytes(buffer)

    async def _send_pinned_request(
        self,
        client: httpx.AsyncClient,
        *,
        url: str,
        hostname: str,
        port: int,
        headers: Dict[str, str],
    ) -> httpx.Response:
        addresses = await self._resolve_and_validate_host(hostname, port)
        last_exc: Optional[Exception] = None
        for address in addresses:
            pinned_url = httpx.URL(url).copy_with(host=address)
            request = client.build_request("GET", pinned_url, headers=headers)
            request.headers["host"] = hostname
            request.extensions["sni_hostname"] = hostname
            try:
                return await client.send(request, stream=True)
            except (httpx.ConnectError, httpx.ConnectTimeout) as exc:
                logger.debug("Connection to %s (%s) failed: %s", hostname, address, exc)
                last_exc = exc
        raise RemoteFetchFailure(
            "Unable to fetch remote image: unable to connect to resolved host"
        ) from last_exc

    async def _resolve_and_validate_host(self, hostname: str, port: int) -> List[str]:
        try:
            literal = ipaddress.ip_address(hostname)
        except ValueError:
            literal = None
        raw_addresses = [hostname] if literal is not None else await self._resolver(hostname, port)

        addresses: List[str] = []
        for raw in raw_addresses:
            try:
                address = ipaddress.ip_address(raw)
            except ValueError as exc:
                raise RemoteFetchFailure("Resolved address is invalid") from exc
            self._validate_ip_address(address)
            if isinstance(address, ipaddress.IPv6Address):
                raise RemoteFetchFailure("IPv6 addresses are not permitted for remote images")
            if str(address) not in addresses:
                addresses.append(str(address))
        if not addresses:
            raise RemoteFetchFailure("Unable to resolve URL hostname to permitted addresses")
        return addresses

    @staticmethod
    def _validate_ip_address(address: Union[ipaddress.IPv4Address, ipaddress.IPv6Address]) -> None:
        if not address.is_global or any(address in network for network in _DENIED_NETWORKS):
            logger.warning("Blocked remote fetch to non-public address %s", address)
            raise RemoteFetchFailure("URL resolves to an address that is not publicly routable")

    def _validate_url(self, url: str) -> ParseResult:
        parsed = urlparse(url)
        scheme = parsed.scheme.lower()
        allowed = {entry.lower() for entry in self.settings.allowed_url_schemes}
        if scheme not in allowed or scheme not in _ALLOWED_PORTS:
            raise RemoteFetchFailure("URL scheme is not permitted")
        if parsed.username or parsed.password:
            raise RemoteFetchFailure("URL must not include embedded credentials")
        if not parsed.hostname:
            raise RemoteFetchFailure("URL must include a hostname")
        self._validate_hostname_format(parsed.hostname)
        return parsed

    @staticmethod
    def _validate_hostname_format(hostname: str) -> None:
        if len(hostname) > 253:
            raise RemoteFetchFailure("Hostname exceeds maximum length")
        if ":" in hostname:
            raise RemoteFetchFailure("IPv6 literals are not permitted for remote images")
        try:
            hostname.encode("ascii")
        except UnicodeEncodeError as exc:
            raise RemoteFetchFailure("Hostname must be ASCII") from exc
        if set(hostname) <= set("0123456789."):
            try:
                address = ipaddress.IPv4Address(hostname)
            except ValueError as exc:
                raise RemoteFetchFailure("Hostname must be a valid IPv4 address") from exc
            if hostname != str(address):
                raise RemoteFetchFailure("IPv4 address must use canonical dotted-decimal notation")
            return
        for label in hostname.split("."):
            if not label:
                raise RemoteFetchFailure("Hostname contains empty labels")
            if label.startswith("-") or label.endswith("-"):
                raise RemoteFetchFailure("Hostname labels must not start or end with '-'")
            if any(ch not in "abcdefghijklmnopqrstuvwxyz0123456789-" for ch in label.lower()):
                raise RemoteFetchFailure("Hostname contains invalid characters")

    @staticmethod
    def _determine_port(parsed: ParseResult) -> int:
        try:
            port = parsed.port
        except ValueError as exc:
            raise RemoteFetchFailure("URL port is invalid") from exc
        expected = _ALLOWED_PORTS[parsed.scheme.lower()]
        if port is not None and port != expected:
            raise RemoteFetchFailure("URL port is not permitted")
        return expected

    @staticmethod
    def _extract_declared_mime(response: httpx.Response) -> str:
        header = response.headers.get("Content-Type") or ""
        return header.split(";", 1)[0].strip().lower()
