"""Media identifier helpers: sanitization and namespace arithmetic.

Identifiers are colon separated paths such as ``wiki:screenshots:shot.png``.
The last segment is the local name and everything before it the namespace.
"""

from __future__ import annotations

import re
import unicodedata

NS_SEP = ":"
SEP_CHAR = "_"

_INVALID_CHARS = re.compile(r"[^a-z0-9:._-]+")
_REPEATED_SEP = re.compile(re.escape(SEP_CHAR) + r"{2,}")
_REPEATED_NS = re.compile(r":+")
_NS_LEADING_JUNK = re.compile(r":[._-]+")
_NS_TRAILING_JUNK = re.compile(r"[._-]+:")


def clean_id(raw: str) -> str:
    """Normalize ``raw`` into a valid media identifier.

    Lowercases, strips accents, turns path separators into namespace
    separators and replaces anything outside ``[a-z0-9:._-]`` with ``_``.
    Leading and trailing separator characters are removed from every
    namespace segment. May return an empty string.
    """
    value = unicodedata.normalize("NFKD", raw or "")
    value = "".join(ch for ch in value if not unicodedata.combining(ch))
    value = value.strip().lower()
    value = value.replace("/", NS_SEP).replace(";", NS_SEP).replace("\\", NS_SEP)
    value = re.sub(r"\s+", SEP_CHAR, value)
    value = _INVALID_CHARS.sub(SEP_CHAR, value)
    value = _REPEATED_SEP.sub(SEP_CHAR, value)
    value = _REPEATED_NS.sub(NS_SEP, value)
    value = value.strip(":._-")
    value = _NS_LEADING_JUNK.sub(NS_SEP, value)
    value = _NS_TRAILING_JUNK.sub(NS_SEP, value)
    return value


def get_ns(media_id: str) -> str:
    """Return the namespace of ``media_id`` or an empty string for the root."""
    ns, sep, _ = (media_id or "").rpartition(NS_SEP)
    return ns.strip(NS_SEP) if sep else ""


def no_ns(media_id: str) -> str:
    """Return the local name of ``media_id`` without its namespace."""
    return (media_id or "").rpartition(NS_SEP)[2]

