"""Expand filename templates into unique media identifiers."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional, Protocol

from models import UploadContext
from services.media_ids import clean_id, get_ns, no_ns

logger = logging.getLogger(__name__)

TOKENS = ("{NAMESPACE}", "{PAGE_ID}", "{USER}", "{LOCAL_NAME}")


class NamingError(Exception):
    """Raised when a template cannot produce a usable identifier."""


class MediaExistence(Protocol):
    def exists(self, media_id: str) -> bool:
        ...


def expand_template(template: str, *, page_id: str, user: str, now: datetime) -> str:
    """Resolve date directives and placeholders in ``template``.

    strftime runs first so that ``%`` characters inside page or user names
    are never read as date directives.
    """
    expanded = now.strftime(template)
    replacements = {
        "{NAMESPACE}": get_ns(page_id),
        "{PAGE_ID}": page_id,
        "{USER}": user or "",
        "{LOCAL_NAME}": no_ns(page_id),
    }
    for token in TOKENS:
        expanded = expanded.replace(token, replacements[token])
    return expanded


class FilenamePolicy:
    """Build a media id from a template and probe the store for a free name.

    The probe tries ``base.ext``, ``base1.ext``, ``base2.ext`` ... and returns
    the first id the store does not know. Probing and the later write are not
    atomic; a concurrent request may take the same name in between.
    """

    def __init__(
        self,
        *,
        template: str,
        store: MediaExistence,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.template = template
        self.store = store
        self._clock = clock or datetime.now

    def candidate_base(self, context: UploadContext, now: Optional[datetime] = None) -> str:
        """Expanded and sanitized identifier without extension or suffix."""
        expanded = expand_template(
            self.template,
            page_id=context.context_page_id,
            user=context.acting_user,
            now=now or self._clock(),
        )
        base = clean_id(expanded)
        if not no_ns(base):
            raise NamingError(f"Filename template {self.template!r} produced an empty name")
        return base

    def generate(self, context: UploadContext, extension: str) -> str:
        base = self.candidate_base(context)
        extension = extension.lower().lstrip(".")
        counter = 0
        while True:
            suffix = str(counter) if counter else ""
            candidate = f"{base}{suffix}.{extension}"
            if not self.store.exists(candidate):
                if counter:
                    logger.info("Name %s.%s taken, using %s", base, extension, candidate)
                return candidate
            counter += 1
