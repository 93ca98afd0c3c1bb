"""Utility functions for the PL/SQL Language Server."""

import logging
import re
from typing import Optional

from lsprotocol.types import Location, Position, Range
from pygls.workspace import TextDocument

logger = logging.getLogger("plsqlnav")

# Dotted chain ending at the cursor, e.g. "schema.pkg.mem" in "schema.pkg.member".
# Segments may be quoted identifiers: "Billing".run
RE_START_DOTTED_WORD = re.compile(
    r'(?:(?:"[^"\r\n]+"|[A-Za-z_0-9$#]+)\.)*(?:"[A-Za-z_0-9$#]*|[A-Za-z_0-9$#]*)$'
)
# Rest of the word under the cursor, up to the closing quote of a quoted name
RE_END_WORD = re.compile(r'^(?:[A-Za-z_0-9$#]+"?)?')


def range_from_start() -> Range:
    """Create an LSP Range pointing to the start of a document."""
    return Range(
        start=Position(line=0, character=0),
        end=Position(line=0, character=0),
    )


def location_from_start(uri: str) -> Location:
    """Create an LSP Location pointing to the start of a document."""
    return Location(uri=uri, range=range_from_start())


def get_attribute_word(doc: TextDocument, position: Position) -> Optional[str]:
    """
    Extract the dotted word at the given position in a document.

    This captures qualified names like 'pkg.member' or 'schema.pkg.member'.
    Only the qualifiers before the cursor word are included.

    Args:
        doc: The text document.
        position: The cursor position.

    Returns:
        The word at position (including dots), or None if not found.
    """
    try:
        attribute_word = doc.word_at_position(
            position, RE_START_DOTTED_WORD, RE_END_WORD
        )
    except IndexError:
        return None
    return attribute_word
