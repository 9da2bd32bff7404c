"""Shared pytest fixtures for imgpaste tests."""

import base64
import os
import sys
from datetime import datetime

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


# ============================================================================
# Payload Fixtures
# ============================================================================

PNG_BASE64 = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)

FIXED_NOW = datetime(2024, 1, 2, 3, 4, 5)

# Address every test hostname resolves to; remote fetches are served by httpx.MockTransport
PUBLIC_HOST_IP = "93.184.216.34"


async def resolve_public(hostname, port):
    return [PUBLIC_HOST_IP]


@pytest.fixture
def png_base64():
    return PNG_BASE64


@pytest.fixture
def png_bytes():
    return base64.b64decode(PNG_BASE64)


@pytest.fixture
def png_data_url():
    return f"data:image/png;base64,{PNG_BASE64}"


@pytest.fixture
def jpeg_bytes():
    return b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00" + b"\x00" * 64 + b"\xff\xd9"


# ============================================================================
# Settings Fixtures
# ============================================================================

@pytest.fixture
def upload_settings():
    from config import UploadSettings
    return UploadSettings()


@pytest.fixture
def store_settings(tmp_path):
    from config import StoreSettings
    return StoreSettings(
        media_dir=str(tmp_path / "media"),
        changelog_path=str(tmp_path / "meta" / "media_changes.jsonl"),
        base_url="https://wiki.example.org",
    )


@pytest.fixture
def media_store(store_settings):
    from services.media_store import FilesystemMediaStore
    return FilesystemMediaStore(store_settings)


@pytest.fixture
def staging_root(tmp_path):
    root = tmp_path / "staging"
    root.mkdir()
    return root


@pytest.fixture
def make_gateway(upload_settings, media_store, staging_root):
    """Build an UploadGateway with a fixed clock and the given ACL lines."""
    from services.acl import AclEvaluator
    from services.auth_gate import AuthGate
    from services.content_decoder import ContentDecoder
    from services.filename_policy import FilenamePolicy
    from services.upload_gateway import UploadGateway

    def _make(acl_lines=("* @ALL 8",), transport=None, template=None, evaluator=None):
        return UploadGateway(
            decoder=ContentDecoder(
                settings=upload_settings, transport=transport, resolver=resolve_public
            ),
            naming=FilenamePolicy(
                template=template or upload_settings.filename_template,
                store=media_store,
                clock=lambda: FIXED_NOW,
            ),
            auth_gate=AuthGate(evaluator or AclEvaluator.from_lines(acl_lines)),
            store=media_store,
            mime_extensions=upload_settings.mime_extensions,
            tmp_root=str(staging_root),
        )

    return _make


@pytest.fixture
def upload_context():
    from models import UploadContext
    return UploadContext(context_page_id="wiki:start", acting_user="alice")
