"""
Structural scanner for PL/SQL source.

This is not a full lexer: it only produces the markers needed to find
declarations and to classify the context of a cursor. Comments and string
literals are reported as opaque markers so their content can never be
mistaken for keywords.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Tuple

from lsprotocol import types

logger = logging.getLogger("plsqlnav")


class MarkerKind(Enum):
    KEYWORD = "keyword"
    IDENTIFIER = "identifier"
    PUNCTUATION = "punctuation"
    LITERAL = "literal"
    COMMENT = "comment"
    TERMINATOR = "terminator"


KEYWORDS = frozenset(
    {
        "create",
        "or",
        "replace",
        "editionable",
        "noneditionable",
        "package",
        "body",
        "is",
        "as",
        "function",
        "procedure",
        "begin",
        "end",
        "declare",
        "if",
        "loop",
        "case",
    }
)

DML_KEYWORDS = frozenset({"select", "insert", "update", "delete", "merge"})

PUNCTUATION = frozenset(";(),")

# Regular identifier, or a double-quoted one
_NAME = r'(?:[A-Za-z][A-Za-z0-9_$#]*|"[^"\n]+")'
_QUALIFIED_NAME = re.compile(rf"{_NAME}(?:\.{_NAME})*")
_NUMBER = re.compile(r"\d+(?:\.\d+)?(?:[eE][+-]?\d+)?")
_TERMINATOR_LINE = re.compile(r"[ \t]*/[ \t]*(?:\n|$)")
# q'[...]' alternative quoting, closing delimiter for each opening one
_Q_QUOTE_CLOSE = {"[": "]", "{": "}", "(": ")", "<": ">"}


@dataclass(frozen=True)
class Marker:
    """
    A syntactic marker found by the scanner.

    Attributes:
        kind: What kind of marker this is.
        text: The source text of the marker.
        start: Position of the first character.
        end: Position just after the last character.
    """

    kind: MarkerKind
    text: str
    start: types.Position
    end: types.Position

    @property
    def parts(self) -> List[str]:
        """Individual names of a (possibly dotted) identifier, unquoted."""
        return [_unquote(part.strip()) for part in self.text.split(".")]

    @property
    def value(self) -> str:
        """Lower-cased text, with quotes removed from identifiers."""
        if self.kind is MarkerKind.IDENTIFIER:
            return ".".join(self.parts).lower()
        return self.text.lower()

    def is_keyword(self, *words: str) -> bool:
        return self.kind is MarkerKind.KEYWORD and self.value in words

    def is_punctuation(self, char: str) -> bool:
        return self.kind is MarkerKind.PUNCTUATION and self.text == char


def _unquote(name: str) -> str:
    if len(name) >= 2 and name[0] == '"' and name[-1] == '"':
        return name[1:-1]
    return name


class _LineMap:
    """Converts string offsets to zero-based (line, character) positions."""

    def __init__(self, text: str):
        self._starts = [0]
        for match in re.finditer("\n", text):
            self._starts.append(match.end())

    def position(self, offset: int) -> types.Position:
        low, high = 0, len(self._starts) - 1
        while low < high:
            middle = (low + high + 1) // 2
            if self._starts[middle] <= offset:
                low = middle
            else:
                high = middle - 1
        return types.Position(line=low, character=offset - self._starts[low])


def _string_end(text: str, offset: int) -> Tuple[int, bool]:
    """Return the offset after a string literal starting at offset, and if it closed."""
    if text[offset] in "qQ":
        delimiter = text[offset + 2]
        closing = _Q_QUOTE_CLOSE.get(delimiter, delimiter) + "'"
        end = text.find(closing, offset + 3)
        if end == -1:
            return len(text), False
        return end + 2, True

    index = offset + 1
    while True:
        end = text.find("'", index)
        if end == -1:
            return len(text), False
        # Doubled quote is an escaped quote
        if text.startswith("''", end):
            index = end + 2
            continue
        return end + 1, True


def scan(text: str) -> Iterator[Marker]:
    """
    Lazily scan PL/SQL text into markers.

    Keywords are matched case-insensitively. Dotted names
    (``schema.pkg.member``) are returned as a single identifier marker.
    Unterminated comments and strings extend to the end of the text.

    Args:
        text: The document text.

    Yields:
        Markers in order of occurrence.
    """
    lines = _LineMap(text)
    length = len(text)
    offset = 0
    at_line_start = True

    def marker(kind: MarkerKind, start: int, end: int) -> Marker:
        return Marker(kind, text[start:end], lines.position(start), lines.position(end))

    while offset < length:
        char = text[offset]

        if at_line_start:
            match = _TERMINATOR_LINE.match(text, offset)
            if match:
                slash = text.index("/", offset)
                yield marker(MarkerKind.TERMINATOR, slash, slash + 1)
                offset = match.end()
                continue
            at_line_start = False

        if char == "\n":
            at_line_start = True
            offset += 1
            continue

        if char.isspace():
            offset += 1
            continue

        if text.startswith("--", offset):
            end = text.find("\n", offset)
            end = length if end == -1 else end
            yield marker(MarkerKind.COMMENT, offset, end)
            offset = end
            continue

        if text.startswith("/*", offset):
            end = text.find("*/", offset + 2)
            if end == -1:
                logger.debug("Unterminated block comment at offset %d", offset)
                end = length
            else:
                end += 2
            yield marker(MarkerKind.COMMENT, offset, end)
            offset = end
            continue

        is_q_quote = (
            char in "qQ"
            and text.startswith("'", offset + 1)
            and offset + 2 < length
            and not text[offset + 2].isspace()
        )
        if char == "'" or is_q_quote:
            end, closed = _string_end(text, offset)
            if not closed:
                logger.debug("Unterminated string literal at offset %d", offset)
            yield marker(MarkerKind.LITERAL, offset, end)
            offset = end
            continue

        if char.isdigit():
            match = _NUMBER.match(text, offset)
            end = match.end() if match else offset + 1
            yield marker(MarkerKind.LITERAL, offset, end)
            offset = end
            continue

        if char.isalpha() or char == '"':
            match = _QUALIFIED_NAME.match(text, offset)
            if match is None:
                # Not a name, e.g. a lone double quote
                offset += 1
                continue
            end = match.end()
            found = marker(MarkerKind.IDENTIFIER, offset, end)
            if found.text.lower() in KEYWORDS or found.text.lower() in DML_KEYWORDS:
                found = marker(MarkerKind.KEYWORD, offset, end)
            yield found
            offset = end
            continue

        if char in PUNCTUATION:
            yield marker(MarkerKind.PUNCTUATION, offset, offset + 1)
        offset += 1
