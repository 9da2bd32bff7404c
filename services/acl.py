"""Rule based permission evaluator for media identifiers.

Rules are lines of ``<pattern> <subject> <level>``. A pattern is either an
exact media id, ``namespace:*`` for everything inside a namespace, or ``*``
for the whole wiki. The subject is a user name or ``@ALL``.

Evaluation walks from the most specific pattern outwards: the exact id
first, then its namespace, then each parent namespace up to ``*``. The first
pattern that has rules matching the user decides; if several of its rules
match, the highest level wins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Iterable, List, Optional, Sequence
from urllib.parse import unquote

from services.media_ids import NS_SEP, clean_id, get_ns

logger = logging.getLogger(__name__)

ALL_USERS = "@ALL"


class AuthLevel(IntEnum):
    NONE = 0
    READ = 1
    EDIT = 2
    CREATE = 4
    UPLOAD = 8
    DELETE = 16
    ADMIN = 255


@dataclass(frozen=True)
class AclRule:
    pattern: str
    subject: str
    level: int

    @classmethod
    def parse(cls, line: str) -> "AclRule":
        """Parse one rule line, raising ``ValueError`` on malformed input."""
        parts = line.split()
        if len(parts) != 3:
            raise ValueError(f"ACL rule must have 3 fields: {line!r}")
        pattern, subject, level = parts
        try:
            level_value = int(level)
        except ValueError as exc:
            raise ValueError(f"ACL level must be an integer: {line!r}") from exc
        if level_value < 0:
            raise ValueError(f"ACL level must be non-negative: {line!r}")
        return cls(pattern=pattern, subject=unquote(subject), level=level_value)


class AclEvaluator:
    """Resolve the permission level a user holds on a media id."""

    def __init__(self, rules: Iterable[AclRule], superusers: Sequence[str] = ()) -> None:
        self._rules: Dict[str, List[AclRule]] = {}
        for rule in rules:
            self._rules.setdefault(rule.pattern, []).append(rule)
        self.superusers = {user for user in superusers if user}

    @classmethod
    def from_lines(cls, lines: Iterable[str], superusers: Sequence[str] = ()) -> "AclEvaluator":
        rules = [AclRule.parse(line) for line in lines if line.strip() and not line.lstrip().startswith("#")]
        return cls(rules, superusers)

    def level_for(self, media_id: str, user: str) -> int:
        if user and user in self.superusers:
            return AuthLevel.ADMIN

        media_id = clean_id(media_id)
        for pattern in self._patterns_for(media_id):
            level = self._match(pattern, user)
            if level is not None:
                return level
        return AuthLevel.NONE

    def _patterns_for(self, media_id: str) -> List[str]:
        patterns = [media_id]
        ns = get_ns(media_id)
        while ns:
            patterns.append(f"{ns}{NS_SEP}*")
            ns = get_ns(ns)
        patterns.append("*")
        return patterns

    def _match(self, pattern: str, user: str) -> Optional[int]:
        matched = [
            rule.level
            for rule in self._rules.get(pattern, ())
            if rule.subject == ALL_USERS or (user and rule.subject == user)
        ]
        if not matched:
            return None
        return max(matched)
