"""PL/SQL scanning and declaration index construction."""

from plsqlnav.parser.parse import MAX_SCOPE_DEPTH, IndexBuilder, build_index
from plsqlnav.parser.scanner import DML_KEYWORDS, KEYWORDS, Marker, MarkerKind, scan

__all__ = [
    "DML_KEYWORDS",
    "IndexBuilder",
    "KEYWORDS",
    "MAX_SCOPE_DEPTH",
    "Marker",
    "MarkerKind",
    "build_index",
    "scan",
]
