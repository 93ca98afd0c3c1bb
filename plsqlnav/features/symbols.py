"""
Document symbol extraction for the PL/SQL Language Server.

Packages, functions and procedures of a document are returned as an outline:
package members and nested subprograms are children of their parent.
"""

import logging
from typing import List

from lsprotocol import types
from lsprotocol.types import SymbolKind

from plsqlnav.features.symbol_table import (
    ConstructKind,
    DeclarationEntry,
    DeclarationIndex,
)

logger = logging.getLogger("plsqlnav")

_SYMBOL_KINDS = {
    ConstructKind.PACKAGE_SPEC: SymbolKind.Package,
    ConstructKind.PACKAGE_BODY: SymbolKind.Package,
    ConstructKind.FUNCTION: SymbolKind.Function,
    ConstructKind.NESTED_FUNCTION: SymbolKind.Function,
    ConstructKind.PROCEDURE: SymbolKind.Method,
    ConstructKind.NESTED_PROCEDURE: SymbolKind.Method,
}


def _is_listed(entry: DeclarationEntry) -> bool:
    if not entry.forward or entry.parent is None:
        return True
    # Forward declarations in a body are repeated by their definition
    return entry.parent.kind is ConstructKind.PACKAGE_SPEC


def _make_symbol(entry: DeclarationEntry) -> types.DocumentSymbol:
    """Create a DocumentSymbol from a declaration entry, with its children."""
    detail = entry.section.value if entry.kind.is_package else entry.kind.base
    return types.DocumentSymbol(
        name=entry.name,
        kind=_SYMBOL_KINDS[entry.kind],
        detail=detail,
        range=entry.full_range,
        selection_range=entry.selection_range,
        children=[_make_symbol(child) for child in entry.children if _is_listed(child)],
    )


def get_document_symbols(index: DeclarationIndex) -> List[types.DocumentSymbol]:
    """
    Build the document outline from a declaration index.

    Args:
        index: The declaration index of the document.

    Returns:
        List of DocumentSymbol objects for the top-level declarations.
    """
    symbols = [_make_symbol(entry) for entry in index.get_top_level() if _is_listed(entry)]
    logger.debug("Found %d top-level symbols", len(symbols))
    return symbols
