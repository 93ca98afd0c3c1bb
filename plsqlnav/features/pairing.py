"""
Document identity and file pairing for the PL/SQL Language Server.

The role of a file (package spec, package body, both, or a standalone
subprogram) is inferred from its extension alone, and related files are
found by base name. No file content is inspected here.
"""

import fnmatch
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath
from typing import Iterable, List, Optional, Sequence

from pygls import uris

from plsqlnav.config import NamingConfig

logger = logging.getLogger("plsqlnav")


class DocumentKind(Enum):
    PACKAGE_COMBINED = "package_combined"
    PACKAGE_SPEC = "package_spec"
    PACKAGE_BODY = "package_body"
    SUBPROGRAM = "subprogram"


_KIND_BY_ROLE = {
    "spec": DocumentKind.PACKAGE_SPEC,
    "body": DocumentKind.PACKAGE_BODY,
    "combined": DocumentKind.PACKAGE_COMBINED,
    "standalone": DocumentKind.SUBPROGRAM,
}

# The kind a paired document must have
_PAIR_KIND = {
    DocumentKind.PACKAGE_SPEC: DocumentKind.PACKAGE_BODY,
    DocumentKind.PACKAGE_BODY: DocumentKind.PACKAGE_SPEC,
}


@dataclass(frozen=True)
class DocumentIdentity:
    """
    Identity of a document derived from its uri.

    Attributes:
        uri: The document uri.
        path: The file system path (or the uri path for non-file uris).
        base_name: The file name without extension.
        extension: The lower-cased extension, including the dot.
        kind: The document kind inferred from the extension.
    """

    uri: str
    path: str
    base_name: str
    extension: str
    kind: DocumentKind

    @property
    def key(self) -> str:
        """Case-insensitive base name."""
        return self.base_name.lower()

    @property
    def directory(self) -> str:
        return str(PurePosixPath(self.path.replace("\\", "/")).parent)

    @classmethod
    def from_uri(cls, uri: str, naming: NamingConfig) -> "DocumentIdentity":
        path = uris.to_fs_path(uri) or uri
        pure = PurePosixPath(path.replace("\\", "/"))
        extension = pure.suffix.lower()
        role = naming.role_for_extension(extension)
        # Unknown extensions behave like self-contained scripts
        kind = _KIND_BY_ROLE[role] if role else DocumentKind.PACKAGE_COMBINED
        return cls(uri=uri, path=path, base_name=pure.stem, extension=extension, kind=kind)


def related_documents(
    identity: DocumentIdentity, candidates: Iterable[DocumentIdentity]
) -> List[DocumentIdentity]:
    """
    Get the documents that may hold the other half of a package.

    Args:
        identity: The current document.
        candidates: Documents sharing the base name, as reported by the
            workspace enumerator. Anything else is filtered out.

    Returns:
        The current document first, then its spec/body counterparts (same
        directory first, then by path). Combined and standalone documents
        have no counterpart.
    """
    pair_kind = _PAIR_KIND.get(identity.kind)
    if pair_kind is None:
        return [identity]

    pairs = [
        candidate
        for candidate in candidates
        if candidate.kind is pair_kind
        and candidate.key == identity.key
        and candidate.uri != identity.uri
    ]
    pairs.sort(key=lambda c: (c.directory != identity.directory, c.path))
    logger.debug(
        "Related documents of %s: %s", identity.uri, [p.uri for p in pairs]
    )
    return [identity] + pairs


def match_rank(
    identity: DocumentIdentity, name: str, patterns: Sequence[str]
) -> Optional[int]:
    """
    Check whether a document is named after a referenced name.

    Args:
        identity: The candidate document.
        name: The referenced package or subprogram name.
        patterns: Base name glob patterns with a ``{name}`` placeholder.

    Returns:
        The index of the first matching pattern (lower ranks first), or None.
    """
    base_name = identity.key
    for rank, pattern in enumerate(patterns):
        if fnmatch.fnmatchcase(base_name, pattern.format(name=name.lower()).lower()):
            return rank
    return None


def rank_documents(
    identities: Iterable[DocumentIdentity], name: str, naming: NamingConfig
) -> List[List[DocumentIdentity]]:
    """
    Group the documents named after name by rank, best rank first.

    Within a group documents are ordered by path. This is the order used
    to break ties between several files declaring the same name.
    """
    groups = {}
    for identity in identities:
        rank = match_rank(identity, name, naming.base_name_patterns)
        if rank is not None:
            groups.setdefault(rank, []).append(identity)
    return [sorted(groups[rank], key=lambda i: i.path) for rank in sorted(groups)]
