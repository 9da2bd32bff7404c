"""Permission check on the destination id of an upload."""

from __future__ import annotations

import logging
from typing import Protocol

from models import UploadContext
from services.acl import AuthLevel
from services.errors import PermissionDenied

logger = logging.getLogger(__name__)


class PermissionEvaluator(Protocol):
    def level_for(self, media_id: str, user: str) -> int:
        ...


class AuthGate:
    """Confirm the acting user may write the exact identifier produced by naming."""

    def __init__(self, evaluator: PermissionEvaluator, threshold: int = AuthLevel.UPLOAD) -> None:
        self.evaluator = evaluator
        self.threshold = threshold

    def check(self, candidate: str, context: UploadContext) -> int:
        level = int(self.evaluator.level_for(candidate, context.acting_user))
        if level < self.threshold:
            logger.warning(
                "User %r holds level %d on %s, upload requires %d",
                context.acting_user or "anonymous",
                level,
                candidate,
                self.threshold,
            )
            raise PermissionDenied(f"Upload to {candidate} not permitted")
        return level
