"""FastAPI router handling pasted media uploads."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Form, HTTPException, status
from fastapi.responses import JSONResponse

from config import config
from core.security import get_acting_user
from models import UploadContext
from services.acl import AclEvaluator
from services.auth_gate import AuthGate
from services.content_decoder import ContentDecoder, RemoteReference, parse_data_url
from services.errors import MissingPayload, UnknownCall
from services.filename_policy import FilenamePolicy
from services.media_store import FilesystemMediaStore
from services.upload_gateway import UploadGateway

logger = logging.getLogger(__name__)

router = APIRouter(tags=["paste"])

_upload_gateway: Optional[UploadGateway] = None


def get_upload_gateway() -> UploadGateway:
    """Resolve or initialize the shared UploadGateway instance."""
    global _upload_gateway
    if _upload_gateway is None:
        store = FilesystemMediaStore(config.STORE)
        _upload_gateway = UploadGateway(
            decoder=ContentDecoder(settings=config.UPLOADS),
            naming=FilenamePolicy(template=config.UPLOADS.filename_template, store=store),
            auth_gate=AuthGate(AclEvaluator.from_lines(config.ACL.rules, config.ACL.superusers)),
            store=store,
            mime_extensions=config.UPLOADS.mime_extensions,
            verbose=config.LOG_LEVEL == "DEBUG",
        )
    return _upload_gateway


def _payload_source(data: Optional[str], url: Optional[str]):
    if data:
        return parse_data_url(data)
    if url and url.strip():
        return RemoteReference(url=url.strip())
    raise MissingPayload("No data was sent")


@router.post("/lib/exe/ajax.php")
@router.post("/ajax")
async def paste_upload(
    call: str = Form(..., description="Operation discriminator"),
    page_id: str = Form("", alias="id", description="Page the paste happened on"),
    data: Optional[str] = Form(None, description="Inline payload as data URL"),
    url: Optional[str] = Form(None, description="Remote image to fetch and rehost"),
    acting_user: str = Depends(get_acting_user),
    gateway: UploadGateway = Depends(get_upload_gateway),
) -> JSONResponse:
    """Store pasted image content and return its new media id."""
    context = UploadContext(context_page_id=page_id, acting_user=acting_user)
    try:
        if call != config.UPLOADS.call_name:
            raise UnknownCall(f"Unknown call {call!r}")
        source = _payload_source(data, url)
    except (UnknownCall, MissingPayload) as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc

    try:
        outcome = await gateway.try_handle(source, context)
    except Exception as exc:  # pragma: no cover - unexpected failures
        logger.exception("Unexpected error storing pasted media", exc_info=exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unable to store media",
        ) from exc

    if not outcome.ok:
        failure = outcome.failure
        raise HTTPException(status_code=failure.status_code, detail=failure.message)

    return JSONResponse(content=outcome.result.to_wire())


@router.get("/health")
async def health() -> dict:
    return {"status": "ok"}
