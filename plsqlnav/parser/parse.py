"""
PL/SQL declaration index construction.

Walks the scanner markers of one document with a scope stack and records
every package, function and procedure declaration it can recognise. This is
a heuristic structural pass, not a grammar: anything it cannot make sense of
is skipped, and malformed source never raises.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional

from lsprotocol import types

from plsqlnav.features.symbol_table import (
    ConstructKind,
    DeclarationEntry,
    DeclarationIndex,
    Section,
)
from plsqlnav.parser.scanner import Marker, MarkerKind, scan

if TYPE_CHECKING:
    from plsqlnav.features.pairing import DocumentKind

logger = logging.getLogger("plsqlnav")

# Nesting deeper than this is not tracked
MAX_SCOPE_DEPTH = 64

# Keywords that cannot appear inside a subprogram or package header
_HEADER_BREAKERS = ("begin", "end", "function", "procedure", "package", "create", "declare")

# After "as"/"is", these mark a call specification without a PL/SQL body
_CALL_SPEC_WORDS = ("language", "external")


def build_index(text: str, kind: Optional["DocumentKind"] = None) -> DeclarationIndex:
    """
    Build the declaration index of a PL/SQL document.

    Args:
        text: The document text.
        kind: The document kind inferred from its file name, if known. It is
            only used to report content that contradicts the file name.

    Returns:
        A DeclarationIndex with the entries in order of occurrence.
    """
    builder = IndexBuilder()
    for marker in scan(text):
        builder.feed(marker)
    index = builder.finish()
    if kind is not None:
        _check_kind(index, kind)
    return index


def _check_kind(index: DeclarationIndex, kind: "DocumentKind") -> None:
    from plsqlnav.features.pairing import DocumentKind

    packages = index.get_packages()
    if kind is DocumentKind.PACKAGE_SPEC and any(
        p.kind is ConstructKind.PACKAGE_BODY for p in packages
    ):
        logger.debug("Package body found in a package specification file")
    elif kind is DocumentKind.PACKAGE_BODY and any(
        p.kind is ConstructKind.PACKAGE_SPEC for p in packages
    ):
        logger.debug("Package specification found in a package body file")


@dataclass
class _Frame:
    """An open scope. Only package and subprogram frames carry an entry."""

    kind: str  # "package", "subprogram", "block" or "control"
    entry: Optional[DeclarationEntry] = None
    in_body: bool = False


@dataclass
class _Header:
    """A package/function/procedure header being read."""

    keyword: Marker
    start: types.Position
    base: str
    is_body: bool = False
    name: Optional[Marker] = None
    depth: int = 0


def _name_range(marker: Marker) -> types.Range:
    """Range of the last component of a possibly dotted name."""
    last = marker.text.split(".")[-1]
    return types.Range(
        start=types.Position(
            line=marker.end.line, character=marker.end.character - len(last)
        ),
        end=marker.end,
    )


class IndexBuilder:
    """
    Incremental consumer of scanner markers producing a DeclarationIndex.

    Feed every marker of one document in order, then call finish().
    """

    def __init__(self):
        self.index = DeclarationIndex()
        self._frames: List[_Frame] = []
        self._overflow = 0
        self._pending_create: Optional[types.Position] = None
        self._header: Optional[_Header] = None
        # After "end": None, "keyword" (if/loop/case allowed), "label" or "semicolon"
        self._after_end: Optional[str] = None
        self._closed: Optional[DeclarationEntry] = None
        self._call_spec_check: Optional[_Frame] = None

    # -------------------------------------------------------------------------
    # Scope stack
    # -------------------------------------------------------------------------

    def _push(self, frame: _Frame) -> None:
        if len(self._frames) >= MAX_SCOPE_DEPTH:
            logger.debug("Scope nesting too deep, no longer tracking scopes")
            self._overflow += 1
            return
        self._frames.append(frame)

    def _pop(self, marker: Marker) -> None:
        self._closed = None
        if self._overflow:
            self._overflow -= 1
            return
        if not self._frames:
            logger.debug(
                "Unbalanced 'end' at line %d, ignoring", marker.start.line + 1
            )
            return
        frame = self._frames.pop()
        if frame.entry is not None and frame.entry.end is None:
            frame.entry.end = marker.end
            self._closed = frame.entry

    def _close_all(self, position: types.Position) -> None:
        for frame in self._frames:
            if frame.entry is not None and frame.entry.end is None:
                frame.entry.end = position
        if self._frames:
            logger.debug("Closing %d open scope(s) at unit terminator", len(self._frames))
        self._frames.clear()
        self._overflow = 0

    def _enclosing(self):
        """Return (nearest declaration frame, whether an anonymous block is closer)."""
        anonymous = False
        for frame in reversed(self._frames):
            if frame.entry is not None:
                return frame, anonymous
            anonymous = True
        return None, anonymous

    # -------------------------------------------------------------------------
    # Marker processing
    # -------------------------------------------------------------------------

    def feed(self, marker: Marker) -> None:
        """Process the next marker of the document."""
        if marker.kind is MarkerKind.COMMENT:
            return

        if self._call_spec_check is not None:
            frame, self._call_spec_check = self._call_spec_check, None
            if marker.kind is MarkerKind.IDENTIFIER and marker.value in _CALL_SPEC_WORDS:
                # Call specification: the declaration has no begin/end of its own
                if self._frames and self._frames[-1] is frame:
                    self._frames.pop()
                    frame.entry.end = marker.end

        if self._after_end is not None and self._feed_after_end(marker):
            return

        if self._header is not None:
            self._feed_header(marker)
            return

        if marker.kind is MarkerKind.LITERAL:
            return

        if marker.kind is MarkerKind.TERMINATOR:
            self._close_all(marker.start)
            self._pending_create = None
        elif marker.is_keyword("create"):
            self._pending_create = marker.start
        elif marker.is_keyword("package", "function", "procedure"):
            start = self._pending_create if self._pending_create is not None else marker.start
            self._pending_create = None
            self._header = _Header(keyword=marker, start=start, base=marker.value)
        elif marker.is_keyword("declare"):
            self._push(_Frame("block"))
        elif marker.is_keyword("begin"):
            top = self._frames[-1] if self._frames else None
            if top is not None and not top.in_body and top.kind != "control":
                top.in_body = True
            else:
                self._push(_Frame("block", in_body=True))
        elif marker.is_keyword("if", "loop", "case"):
            self._push(_Frame("control", in_body=True))
        elif marker.is_keyword("end"):
            self._pop(marker)
            self._after_end = "keyword"
        elif marker.is_punctuation(";"):
            self._pending_create = None

    def _feed_after_end(self, marker: Marker) -> bool:
        """Consume the optional words following "end". Returns True if consumed."""
        state, self._after_end = self._after_end, None
        if state == "keyword" and marker.is_keyword("if", "loop", "case"):
            self._after_end = "label"
            return True
        if state != "semicolon" and marker.kind is MarkerKind.IDENTIFIER:
            if self._closed is not None:
                self._closed.end = marker.end
            self._after_end = "semicolon"
            return True
        if marker.is_punctuation(";") and self._closed is not None:
            self._closed.end = marker.end
        self._closed = None
        return False

    def _abandon_header(self, marker: Marker, reason: str) -> None:
        header, self._header = self._header, None
        logger.debug(
            "Ignoring %s header at line %d: %s",
            header.base,
            header.keyword.start.line + 1,
            reason,
        )
        self.feed(marker)

    def _feed_header(self, marker: Marker) -> None:
        header = self._header

        if marker.kind is MarkerKind.TERMINATOR or (
            marker.kind is MarkerKind.KEYWORD and marker.value in _HEADER_BREAKERS
        ):
            self._abandon_header(marker, f"unexpected '{marker.text}'")
            return

        if header.name is None:
            if header.base == "package" and marker.is_keyword("body") and not header.is_body:
                header.is_body = True
            elif marker.kind is MarkerKind.IDENTIFIER:
                header.name = marker
            else:
                self._abandon_header(marker, "no name")
            return

        if marker.is_punctuation("("):
            header.depth += 1
        elif marker.is_punctuation(")"):
            header.depth -= 1
            if header.depth < 0:
                self._header = None
        elif header.depth > 0:
            return
        elif marker.is_punctuation(","):
            # Member of an object type attribute list
            self._header = None
        elif marker.is_punctuation(";"):
            self._header = None
            if header.base != "package":
                self._emit(header, forward=True)
        elif marker.is_keyword("is", "as"):
            self._header = None
            entry = self._emit(header, forward=False)
            frame = _Frame("package" if header.base == "package" else "subprogram", entry)
            self._push(frame)
            if frame.kind == "subprogram":
                self._call_spec_check = frame

    def _emit(self, header: _Header, forward: bool) -> DeclarationEntry:
        frame, anonymous = self._enclosing()
        parent = frame.entry if frame is not None else None

        if header.base == "package":
            kind = ConstructKind.PACKAGE_BODY if header.is_body else ConstructKind.PACKAGE_SPEC
            section = Section.BODY if header.is_body else Section.SPEC
        else:
            nested = anonymous or (parent is not None and not parent.kind.is_package)
            if header.base == "function":
                kind = ConstructKind.NESTED_FUNCTION if nested else ConstructKind.FUNCTION
            else:
                kind = ConstructKind.NESTED_PROCEDURE if nested else ConstructKind.PROCEDURE
            section = parent.section if parent is not None and parent.kind.is_package else Section.BODY

        parts = header.name.parts
        entry = DeclarationEntry(
            name=parts[-1],
            kind=kind,
            section=section,
            position=header.start,
            keyword_range=types.Range(start=header.keyword.start, end=header.keyword.end),
            selection_range=_name_range(header.name),
            parent=parent,
            schema=parts[-2] if len(parts) > 1 else None,
            forward=forward,
        )
        self.index.add(entry)
        return entry

    def finish(self) -> DeclarationIndex:
        """Return the index, logging any scopes left open."""
        if self._header is not None:
            logger.debug("Unterminated %s header at end of text", self._header.base)
            self._header = None
        if self._frames:
            logger.debug("%d scope(s) still open at end of text", len(self._frames))
        return self.index
