"""
Editing surfaces receiving pasted media.

A surface is where the cursor lives: either a plain wiki-syntax textarea
or a rich-text document. Surfaces also host the small progress notices
shown while an upload is running.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

logger = logging.getLogger(__name__)

NOTICE_OFFSET_EM = 3


@dataclass
class ProgressNotice:
    """One stacked progress box; ``state`` is info, success or error."""

    text: str
    offset_em: int = 0
    state: str = "info"
    dismissed: bool = False

    def succeed(self, text: str) -> None:
        self.state = "success"
        self.text = text

    def fail(self, text: str) -> None:
        self.state = "error"
        self.text = text

    def dismiss(self) -> None:
        self.dismissed = True


class NoticeBoard:
    """Stack of notices; each new notice is offset below the visible ones."""

    def __init__(self) -> None:
        self.notices: List[ProgressNotice] = []

    def open(self, text: str) -> ProgressNotice:
        visible = sum(1 for notice in self.notices if not notice.dismissed)
        notice = ProgressNotice(text=text, offset_em=visible * NOTICE_OFFSET_EM)
        self.notices.append(notice)
        return notice

    def visible(self) -> List[ProgressNotice]:
        return [notice for notice in self.notices if not notice.dismissed]


class EditingSurface(Protocol):
    page_id: str
    is_rich_text: bool
    is_attached: bool
    notices: NoticeBoard

    def insert_reference(self, relative_id: str) -> None:
        ...

    def insert_fragment(self, html: str) -> None:
        ...


class PlainTextSurface:
    """Wiki-syntax textarea; media are inserted as ``{{id}}`` at the caret."""

    is_rich_text = False

    def __init__(self, page_id: str, text: str = "", caret: Optional[int] = None) -> None:
        self.page_id = page_id
        self.text = text
        self.caret = len(text) if caret is None else max(0, min(caret, len(text)))
        self.is_attached = True
        self.notices = NoticeBoard()

    def insert_reference(self, relative_id: str) -> None:
        syntax = "{{" + relative_id + "}}"
        self.text = self.text[: self.caret] + syntax + self.text[self.caret:]
        self.caret += len(syntax)

    def insert_fragment(self, html: str) -> None:
        raise TypeError("Plain text surfaces cannot take HTML fragments")

    def detach(self) -> None:
        self.is_attached = False


@dataclass
class DocumentNode:
    kind: str
    attrs: dict = field(default_factory=dict)


class RichTextSurface:
    """Rich-text document; pasted content replaces the selection."""

    is_rich_text = True

    def __init__(self, page_id: str) -> None:
        self.page_id = page_id
        self.nodes: List[DocumentNode] = []
        self.is_attached = True
        self.notices = NoticeBoard()

    def insert_reference(self, relative_id: str) -> None:
        self.nodes.append(DocumentNode(kind="image", attrs={"id": relative_id}))

    def insert_fragment(self, html: str) -> None:
        self.nodes.append(DocumentNode(kind="html", attrs={"html": html}))

    def detach(self) -> None:
        self.is_attached = False
