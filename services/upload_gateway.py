"""Upload pipeline: decode, validate, stage, name, authorize and store."""

from __future__ import annotations

import hashlib
import logging
import tempfile
import uuid
from contextlib import ExitStack, contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional

from logging_utils import Phase, PhaseLogger
from models import UploadContext, UploadOutcome, UploadResult
from services.auth_gate import AuthGate
from services.content_decoder import ContentDecoder, PayloadSource
from services.errors import StorageFailure, TempIOFailure, UnsupportedMimeType, UploadError
from services.filename_policy import FilenamePolicy, NamingError
from services.media_store import FilesystemMediaStore, StoreError

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Upload successful"


@contextmanager
def staging_area(data: bytes, *, tmp_root: Optional[str] = None) -> Iterator[Path]:
    """Write ``data`` into a private temporary directory for the block's duration.

    The directory and its file are removed when the block exits, whether it
    returns normally or raises.
    """
    try:
        tmp_dir = tempfile.TemporaryDirectory(prefix="imgpaste-", dir=tmp_root)
    except OSError as exc:
        raise TempIOFailure("Unable to create temporary storage") from exc

    with tmp_dir as dir_name:
        staged = Path(dir_name) / hashlib.md5(data).hexdigest()
        try:
            staged.write_bytes(data)
        except OSError as exc:
            raise TempIOFailure("Unable to write temporary file") from exc
        yield staged


class UploadGateway:
    """Turn one payload plus its context into a stored media object.

    Every request runs independently; the only shared state is the store.
    """

    def __init__(
        self,
        *,
        decoder: ContentDecoder,
        naming: FilenamePolicy,
        auth_gate: AuthGate,
        store: FilesystemMediaStore,
        mime_extensions: Dict[str, str],
        tmp_root: Optional[str] = None,
        verbose: bool = False,
    ) -> None:
        self.decoder = decoder
        self.naming = naming
        self.auth_gate = auth_gate
        self.store = store
        self.mime_extensions = {mime.lower(): ext for mime, ext in mime_extensions.items()}
        self.tmp_root = tmp_root
        self.verbose = verbose

    def extension_for(self, mime_type: str) -> str:
        extension = self.mime_extensions.get((mime_type or "").lower())
        if not extension:
            raise UnsupportedMimeType(
                f"Upload denied. The file type {mime_type or 'unknown'} is not allowed."
            )
        return extension

    async def handle(self, source: PayloadSource, context: UploadContext) -> UploadResult:
        phase_logger = PhaseLogger(
            request_id=uuid.uuid4().hex[:8],
            verbose=self.verbose,
            logger=logger,
        )
        current = Phase.DECODE
        try:
            with phase_logger.phase(Phase.DECODE):
                payload = await self.decoder.decode(source)

            current = Phase.VALIDATE
            with phase_logger.phase(Phase.VALIDATE):
                extension = self.extension_for(payload.mime_type)

            current = Phase.STAGE
            with ExitStack() as staging:
                with phase_logger.phase(Phase.STAGE):
                    staged_path = staging.enter_context(staging_area(payload.data, tmp_root=self.tmp_root))
                    phase_logger.info(f"Staged {payload.size} bytes")

                current = Phase.NAMING
                with phase_logger.phase(Phase.NAMING):
                    try:
                        media_id = self.naming.generate(context, extension)
                    except NamingError as exc:
                        raise StorageFailure(str(exc)) from exc
                    phase_logger.info(f"Candidate id {media_id}")

                current = Phase.AUTH
                with phase_logger.phase(Phase.AUTH):
                    auth_level = self.auth_gate.check(media_id, context)

                current = Phase.STORE
                with phase_logger.phase(Phase.STORE):
                    try:
                        stored_id = self.store.save(
                            staged_path,
                            media_id,
                            mime_type=payload.mime_type,
                            extension=extension,
                            auth_level=auth_level,
                            user=context.acting_user,
                        )
                    except StoreError as exc:
                        raise StorageFailure(str(exc)) from exc
        except UploadError as exc:
            phase_logger.log_decision(exc.kind.value.upper(), reason=exc.message, phase=current)
            raise

        with phase_logger.phase(Phase.COMPLETE):
            result = UploadResult(
                message=SUCCESS_MESSAGE,
                id=stored_id,
                mime=payload.mime_type,
                ext=extension,
                url=self.store.url_for(stored_id),
            )
            phase_logger.log_decision("STORED", reason=stored_id)
        phase_logger.log_timing_summary()
        return result

    async def try_handle(self, source: PayloadSource, context: UploadContext) -> UploadOutcome:
        """Like ``handle`` but reports pipeline failures as a value."""
        try:
            result = await self.handle(source, context)
        except UploadError as exc:
            return UploadOutcome.failed(exc.to_failure())
        return UploadOutcome.success(result)
