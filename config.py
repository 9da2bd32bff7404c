"""
Configuration for the imgpaste media ingestion service
======================================================

Central configuration for the paste-to-media pipeline: accepted mime types,
filename templates, remote fetch limits, the media store location and the
ACL rules used by the upload gate.
Values come from defaults below, a .env file and environment overrides.
"""

import os
import sys
from typing import Dict, List

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load environment variables from .env file
load_dotenv()


class UploadSettings(BaseModel):
    """Paste ingestion configuration and limits."""

    call_name: str = Field(
        default="plugin_imgpaste",
        description="Operation discriminator expected in the 'call' form field",
    )
    filename_template: str = Field(
        default="{NAMESPACE}:%Y%m%d-%H%M%S",
        description="Template for generated media ids ({NAMESPACE}, {PAGE_ID}, {USER}, {LOCAL_NAME} and strftime tokens)",
    )
    mime_extensions: Dict[str, str] = Field(
        default_factory=lambda: {
            "image/png": "png",
            "image/jpeg": "jpg",
            "image/gif": "gif",
            "image/webp": "webp",
            "image/bmp": "bmp",
            "image/svg+xml": "svg",
        },
        description="Allow-list mapping accepted MIME types to stored file extensions",
    )
    max_size_bytes: int = Field(
        default=10 * 1024 * 1024,
        gt=0,
        description="Maximum decoded payload size in bytes",
    )
    allowed_url_schemes: List[str] = Field(
        default_factory=lambda: ["http", "https"],
        description="URL schemes permitted for remote rehosting",
    )
    url_max_redirects: int = Field(
        default=3,
        ge=0,
        description="Maximum number of redirects followed when fetching remote images",
    )
    url_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Overall timeout in seconds for remote image downloads",
    )
    url_connect_timeout_seconds: float = Field(
        default=3.0,
        gt=0,
        description="Maximum seconds to wait for establishing the remote connection",
    )
    url_user_agent: str = Field(
        default="imgpaste/1.0",
        description="User-Agent header used for remote image fetches",
    )


class StoreSettings(BaseModel):
    """Filesystem media store configuration."""

    media_dir: str = Field(
        default="data/media",
        description="Root directory of the media store; namespaces map to subdirectories",
    )
    changelog_path: str = Field(
        default="data/meta/media_changes.jsonl",
        description="JSON lines file receiving one entry per stored media object",
    )
    base_url: str = Field(
        default="",
        description="Public base URL of the wiki, used for media links and local image detection",
    )
    media_url_prefix: str = Field(
        default="/_media/",
        description="Path prefix under which stored media are served",
    )


class AclSettings(BaseModel):
    """Access control rules evaluated before a media id is written."""

    rules: List[str] = Field(
        default_factory=lambda: ["* @ALL 8"],
        description="ACL lines '<pattern> <subject> <level>'; the most specific pattern with a line for the user applies, and its highest level wins",
    )
    superusers: List[str] = Field(
        default_factory=list,
        description="Users that always receive the maximum permission level",
    )
    user_header: str = Field(
        default="X-Remote-User",
        description="Request header carrying the authenticated user set by the front proxy",
    )
    trusted_proxies: List[str] = Field(
        default_factory=lambda: ["127.0.0.1/32", "::1/128"],
        description="CIDRs of front proxies allowed to set the user header",
    )


def _parse_mime_extensions(raw: str) -> Dict[str, str]:
    mapping: Dict[str, str] = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        mime, sep, ext = entry.partition("=")
        if not sep or not mime.strip() or not ext.strip():
            raise ValueError(f"Invalid mime mapping entry: {entry!r}")
        mapping[mime.strip().lower()] = ext.strip().lower().lstrip(".")
    if not mapping:
        raise ValueError("Mime mapping override is empty")
    return mapping


class Config(BaseModel):
    """Process-wide configuration assembled from defaults and environment."""

    UPLOADS: UploadSettings = Field(default_factory=UploadSettings)
    STORE: StoreSettings = Field(default_factory=StoreSettings)
    ACL: AclSettings = Field(default_factory=AclSettings)

    APP_HOST: str = "0.0.0.0"
    APP_PORT: int = 8000
    APP_RELOAD: bool = False
    LOG_LEVEL: str = "INFO"

    def __init__(self, **data):
        super().__init__(**data)

        template_override = os.getenv("IMGPASTE_FILENAME_TEMPLATE")
        if template_override:
            self.UPLOADS.filename_template = template_override

        mime_override = os.getenv("IMGPASTE_MIME_EXTENSIONS")
        if mime_override:
            try:
                self.UPLOADS.mime_extensions = _parse_mime_extensions(mime_override)
            except ValueError as exc:
                print(f"[CONFIG] Ignoring IMGPASTE_MIME_EXTENSIONS: {exc}", file=sys.stderr)

        max_size_override = os.getenv("IMGPASTE_MAX_SIZE_BYTES")
        if max_size_override:
            try:
                value = int(max_size_override)
                if value <= 0:
                    raise ValueError("must be positive")
                self.UPLOADS.max_size_bytes = value
            except ValueError as exc:
                print(f"[CONFIG] Ignoring IMGPASTE_MAX_SIZE_BYTES: {exc}", file=sys.stderr)

        media_dir_override = os.getenv("IMGPASTE_MEDIA_DIR")
        if media_dir_override:
            self.STORE.media_dir = media_dir_override

        changelog_override = os.getenv("IMGPASTE_CHANGELOG_PATH")
        if changelog_override:
            self.STORE.changelog_path = changelog_override

        self.STORE.base_url = os.getenv("IMGPASTE_BASE_URL", self.STORE.base_url).rstrip("/")

        acl_override = os.getenv("IMGPASTE_ACL")
        if acl_override:
            self.ACL.rules = [line.strip() for line in acl_override.split(";") if line.strip()]

        superusers_override = os.getenv("IMGPASTE_SUPERUSERS")
        if superusers_override:
            self.ACL.superusers = [u.strip() for u in superusers_override.split(",") if u.strip()]

        self.ACL.user_header = os.getenv("IMGPASTE_USER_HEADER", self.ACL.user_header)

        proxies_override = os.getenv("IMGPASTE_TRUSTED_PROXIES")
        if proxies_override:
            self.ACL.trusted_proxies = [p.strip() for p in proxies_override.split(",") if p.strip()]

        self.APP_HOST = os.getenv("APP_HOST", self.APP_HOST)
        port_override = os.getenv("APP_PORT")
        if port_override:
            try:
                value = int(port_override)
                if not 0 < value < 65536:
                    raise ValueError("must be between 1 and 65535")
                self.APP_PORT = value
            except ValueError as exc:
                print(f"[CONFIG] Ignoring APP_PORT: {exc}", file=sys.stderr)

        self.APP_RELOAD = os.getenv("APP_RELOAD", "false").lower() == "true"
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", self.LOG_LEVEL).upper()


# Global config instance
config = Config()
