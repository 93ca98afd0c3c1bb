"""
Definition resolution for the PL/SQL Language Server.

Given the dotted word under the cursor, decide which declaration it refers
to. The current document, its spec/body counterpart and, when needed, other
workspace documents are indexed on demand for every request; nothing is
cached between requests.

Resolution order:

* On a declaration (keyword or name), jump to the other section: a spec
  entry goes to its body implementation and a body implementation goes to
  its spec entry.
* Otherwise walk the enclosing scopes innermost first, then the enclosing
  package (including its paired file), then top-level declarations.
* ``pkg.member`` resolves in the package called ``pkg``, found by file
  name in the workspace. When no such package exists the qualifier is taken
  to be a schema.
* Unqualified names not found locally are looked up in the workspace by
  file name, then by scanning every document.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from lsprotocol import types

from plsqlnav.features.pairing import (
    DocumentIdentity,
    DocumentKind,
    rank_documents,
    related_documents,
)
from plsqlnav.features.symbol_table import (
    ConstructKind,
    DeclarationEntry,
    DeclarationIndex,
    Section,
)
from plsqlnav.features.workspace import WorkspaceContext
from plsqlnav.parser.parse import build_index
from plsqlnav.parser.scanner import DML_KEYWORDS, MarkerKind, scan

logger = logging.getLogger("plsqlnav")

# Words that never name a package or subprogram
RESERVED_WORDS = frozenset(
    """
    all and any as authid begin between binary_integer blob body boolean by
    case char clob close commit constant create current_user cursor date
    declare default definer delete distinct editionable else elsif end
    exception exists exit false fetch for from function goto group having if
    in insert integer intersect into is like loop merge minus noneditionable
    nocopy not null number of on open or order others out package pls_integer
    pragma procedure raise record replace return rollback rowtype savepoint
    select set subtype table then true type union update using values
    varchar varchar2 when where while with
    """.split()
)


class Role(Enum):
    """Syntactic role of the word under the cursor."""

    AT_DECLARATION_SITE = "declaration"
    AT_CALL_SITE = "call"
    AT_DML_REFERENCE = "dml"


@dataclass
class ResolutionContext:
    """
    What is known about the word under the cursor.

    Attributes:
        identifier: The word under the cursor (last part of the dotted chain).
        qualifiers: The dotted prefix, e.g. ["schema", "pkg"].
        position: The cursor position.
        role: The syntactic role of the identifier.
        enclosing: Declarations enclosing the cursor, innermost first.
        declaration: The declaration under the cursor, for declaration sites.
    """

    identifier: str
    qualifiers: List[str]
    position: types.Position
    role: Role
    enclosing: List[DeclarationEntry] = field(default_factory=list)
    declaration: Optional[DeclarationEntry] = None

    @property
    def expected_base(self) -> Optional[str]:
        """Construct base kind implied by the context (only SQL needs a function)."""
        return "function" if self.role is Role.AT_DML_REFERENCE else None


@dataclass
class ResolvedDefinition:
    """
    Result of resolving a word to its definition.

    Attributes:
        uri: The document holding the definition.
        position: Position of the opening token of the definition.
        range: From the opening token to the end of the declared name.
        entry: The declaration, None when the whole file is the definition.
    """

    uri: str
    position: types.Position
    range: types.Range
    entry: Optional[DeclarationEntry] = None

    @classmethod
    def from_entry(cls, uri: str, entry: DeclarationEntry) -> "ResolvedDefinition":
        return cls(uri=uri, position=entry.position, range=entry.range, entry=entry)

    @classmethod
    def file_start(cls, uri: str) -> "ResolvedDefinition":
        start = types.Position(line=0, character=0)
        return cls(uri=uri, position=start, range=types.Range(start=start, end=start))


@dataclass
class IndexedDocument:
    """A document and its declaration index, valid for one request."""

    identity: DocumentIdentity
    index: DeclarationIndex


def _position_key(position: types.Position) -> Tuple[int, int]:
    return (position.line, position.character)


def entry_rank(
    entry: DeclarationEntry,
    expected_base: Optional[str] = None,
    role: Role = Role.AT_CALL_SITE,
    order: int = 0,
) -> tuple:
    """
    Sort key implementing the tie-break policy, lower is better.

    Exact construct kind first, then body over spec (except at declaration
    sites), then definitions over forward declarations, then document order
    and position.
    """
    return (
        0 if expected_base is None or entry.kind.base == expected_base else 1,
        0 if role is Role.AT_DECLARATION_SITE or entry.section is Section.BODY else 1,
        1 if entry.forward else 0,
        order,
        _position_key(entry.position),
    )


def pick_entry(
    candidates: Iterable[DeclarationEntry],
    expected_base: Optional[str] = None,
    role: Role = Role.AT_CALL_SITE,
) -> Optional[DeclarationEntry]:
    """Choose the best candidate declaration, or None if there is none."""
    candidates = list(candidates)
    if not candidates:
        return None
    return min(candidates, key=lambda e: entry_rank(e, expected_base, role))


def _inside_trivia(text: str, position: types.Position) -> bool:
    """Check if a position is inside a comment or a string literal."""
    cursor = _position_key(position)
    for marker in scan(text):
        if _position_key(marker.start) >= cursor:
            return False
        if marker.kind in (MarkerKind.COMMENT, MarkerKind.LITERAL):
            if cursor <= _position_key(marker.end):
                return True
    return False


def _inside_dml(text: str, position: types.Position) -> bool:
    """Check if a DML keyword starts the statement holding the position."""
    cursor = _position_key(position)
    in_dml = False
    for marker in scan(text):
        if _position_key(marker.start) >= cursor:
            break
        if marker.kind is MarkerKind.TERMINATOR or marker.is_punctuation(";"):
            in_dml = False
        elif marker.is_keyword("begin", "declare"):
            in_dml = False
        elif marker.kind is MarkerKind.KEYWORD and marker.value in DML_KEYWORDS:
            in_dml = True
    return in_dml


def classify_context(
    text: str, index: DeclarationIndex, position: types.Position, word: str
) -> Optional[ResolutionContext]:
    """
    Work out the resolution context of a word at a position.

    Args:
        text: The current document text.
        index: The declaration index of the current document.
        position: The cursor position.
        word: The dotted word ending at the cursor word (e.g. "pkg.member").

    Returns:
        The ResolutionContext, or None if the word cannot refer to a declaration
        (keywords, literals, comments, strings).
    """
    parts = [part.strip().strip('"') for part in word.split(".")] if word else []
    if not parts or not parts[-1]:
        return None
    identifier, qualifiers = parts[-1], parts[:-1]

    declaration = index.declaration_at(position)
    if declaration is not None and identifier.lower() in (
        declaration.key,
        declaration.kind.base,
    ):
        return ResolutionContext(
            identifier=declaration.name,
            qualifiers=qualifiers,
            position=position,
            role=Role.AT_DECLARATION_SITE,
            enclosing=index.enclosing_chain(position),
            declaration=declaration,
        )

    if identifier.lower() in RESERVED_WORDS or identifier[0].isdigit():
        logger.debug("Not a resolvable name: %s", identifier)
        return None
    if _inside_trivia(text, position):
        logger.debug("Cursor is inside a comment or a string literal")
        return None

    role = Role.AT_DML_REFERENCE if _inside_dml(text, position) else Role.AT_CALL_SITE
    return ResolutionContext(
        identifier=identifier,
        qualifiers=qualifiers,
        position=position,
        role=role,
        enclosing=index.enclosing_chain(position),
    )


class DefinitionResolver:
    """
    Resolves one definition request.

    An instance lives for a single request. It memoises the documents it has
    indexed and the workspace listing so that each file is read at most once
    per request; nothing outlives the request.
    """

    def __init__(self, workspace: WorkspaceContext, current: IndexedDocument):
        self.workspace = workspace
        self.current = current
        self._documents: Dict[str, IndexedDocument] = {current.identity.uri: current}
        self._identities: Optional[List[DocumentIdentity]] = None

    # -------------------------------------------------------------------------
    # Document access
    # -------------------------------------------------------------------------

    async def _open(self, identity: DocumentIdentity) -> IndexedDocument:
        text = await self.workspace.provider.open_document(identity.uri)
        return IndexedDocument(identity, build_index(text, identity.kind))

    async def open_all(self, identities: Sequence[DocumentIdentity]) -> List[IndexedDocument]:
        """Index several documents concurrently, keeping their order."""
        missing = [i for i in identities if i.uri not in self._documents]
        opened = await asyncio.gather(*(self._open(i) for i in missing))
        for document in opened:
            self._documents[document.identity.uri] = document
        return [self._documents[i.uri] for i in identities]

    async def workspace_identities(self) -> List[DocumentIdentity]:
        """All workspace documents except the current one."""
        if self._identities is None:
            uris = await self.workspace.enumerator.list_all_documents()
            identities = [DocumentIdentity.from_uri(uri, self.workspace.naming) for uri in uris]
            self._identities = [
                i for i in identities if i.path != self.current.identity.path
            ]
        return self._identities

    async def related(self) -> List[IndexedDocument]:
        """The current document followed by its spec/body counterparts."""
        identity = self.current.identity
        if identity.kind not in (DocumentKind.PACKAGE_SPEC, DocumentKind.PACKAGE_BODY):
            return [self.current]
        candidates = [
            c for c in await self.workspace_identities() if c.key == identity.key
        ]
        pairs = related_documents(identity, candidates)[1:]
        return [self.current] + await self.open_all(pairs)

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    async def resolve(self, context: ResolutionContext) -> Optional[ResolvedDefinition]:
        if context.role is Role.AT_DECLARATION_SITE:
            return await self.resolve_declaration_site(context.declaration)
        if context.qualifiers:
            return await self.resolve_qualified(context)
        return await self.resolve_unqualified(context)

    async def resolve_declaration_site(
        self, declaration: DeclarationEntry
    ) -> Optional[ResolvedDefinition]:
        """Mirror a declaration into the other section of its package."""
        package = declaration.package
        if package is None or declaration.kind.is_nested:
            logger.debug("%s has no counterpart declaration", declaration.name)
            return None

        documents = await self.related()

        if declaration.kind.is_package:
            wanted = (
                ConstructKind.PACKAGE_BODY
                if declaration.kind is ConstructKind.PACKAGE_SPEC
                else ConstructKind.PACKAGE_SPEC
            )
            for document in documents:
                for entry in document.index.get_packages(declaration.name):
                    if entry.kind is wanted:
                        return ResolvedDefinition.from_entry(document.identity.uri, entry)
            return None

        def counterparts(document: IndexedDocument, section: Section, forward: bool):
            return [
                entry
                for entry in document.index.get_members(package.name, declaration.name, section)
                if entry.kind.base == declaration.kind.base and entry.forward == forward
            ]

        # Overloads map onto each other by their order of declaration
        siblings = counterparts(self.current, declaration.section, declaration.forward)
        ordinal = siblings.index(declaration) if declaration in siblings else 0

        if declaration.section is Section.SPEC or declaration.forward:
            searches = [(document, Section.BODY, False) for document in documents]
        else:
            searches = [(document, Section.SPEC, True) for document in documents]
            searches.append((self.current, Section.BODY, True))

        for document, section, forward in searches:
            targets = [e for e in counterparts(document, section, forward) if e is not declaration]
            if targets:
                target = targets[ordinal] if ordinal < len(targets) else targets[0]
                return ResolvedDefinition.from_entry(document.identity.uri, target)
        return None

    def _search_scopes(self, context: ResolutionContext) -> Optional[DeclarationEntry]:
        """Search the enclosing scopes of the cursor, innermost first."""
        key = context.identifier.lower()
        for scope in context.enclosing:
            candidates = [child for child in scope.children if child.key == key]
            if scope.key == key and not scope.kind.is_package:
                candidates.append(scope)
            found = pick_entry(candidates, context.expected_base, context.role)
            if found is not None:
                return found
        return None

    def _pick_member(
        self,
        documents: Sequence[IndexedDocument],
        package_name: str,
        context: ResolutionContext,
    ) -> Optional[ResolvedDefinition]:
        best = None
        for order, document in enumerate(documents):
            for entry in document.index.get_members(package_name, context.identifier):
                rank = entry_rank(entry, context.expected_base, context.role, order)
                if best is None or rank < best[0]:
                    best = (rank, document, entry)
        if best is None:
            return None
        _, document, entry = best
        return ResolvedDefinition.from_entry(document.identity.uri, entry)

    async def package_documents(self, package_name: str) -> List[IndexedDocument]:
        """
        Find the documents declaring a package.

        The current document and its pair are used when they declare it,
        otherwise workspace documents named after the package are indexed,
        best file name match first. When no such file declares it, every
        workspace document is scanned if the naming configuration allows it.
        """
        if self.current.index.get_packages(package_name):
            documents = await self.related()
            return [d for d in documents if d.index.get_packages(package_name)]

        identities = await self.workspace_identities()
        for group in rank_documents(identities, package_name, self.workspace.naming):
            documents = [
                d for d in await self.open_all(group) if d.index.get_packages(package_name)
            ]
            if documents:
                return documents

        if not self.workspace.naming.workspace_scan:
            return []
        logger.debug("Scanning the workspace for package %s", package_name)
        return [
            d for d in await self.open_all(identities) if d.index.get_packages(package_name)
        ]

    async def resolve_qualified(self, context: ResolutionContext) -> Optional[ResolvedDefinition]:
        package_name = context.qualifiers[-1]
        documents = await self.package_documents(package_name)
        if documents:
            logger.debug(
                "Resolving %s in package %s (%d document(s))",
                context.identifier,
                package_name,
                len(documents),
            )
            return self._pick_member(documents, package_name, context)

        # No such package, so the qualifier is a schema name
        logger.debug("%s is not a known package, treating it as a schema", package_name)
        return await self.resolve_top_level(context)

    def _search_local_top_level(self, context: ResolutionContext) -> Optional[ResolvedDefinition]:
        key = context.identifier.lower()
        local = [e for e in self.current.index.get_top_level() if e.key == key]
        found = pick_entry(local, context.expected_base, context.role)
        if found is None:
            return None
        return ResolvedDefinition.from_entry(self.current.identity.uri, found)

    async def resolve_unqualified(self, context: ResolutionContext) -> Optional[ResolvedDefinition]:
        found = self._search_scopes(context)
        if found is not None:
            return ResolvedDefinition.from_entry(self.current.identity.uri, found)

        resolved = self._search_local_top_level(context)
        if resolved is not None:
            return resolved

        package = next(
            (entry.package for entry in context.enclosing if entry.package is not None),
            None,
        )
        if package is not None:
            documents = await self.package_documents(package.name)
            resolved = self._pick_member(documents, package.name, context)
            if resolved is not None:
                return resolved

        return await self.resolve_top_level(context)

    async def resolve_top_level(self, context: ResolutionContext) -> Optional[ResolvedDefinition]:
        """Resolve a name declared at top level: a standalone subprogram or a package."""
        resolved = self._search_local_top_level(context)
        if resolved is not None:
            return resolved

        identities = await self.workspace_identities()
        groups = rank_documents(identities, context.identifier, self.workspace.naming)
        if groups:
            # Only the best ranked file names are considered
            documents = await self.open_all(groups[0])
            resolved = self._pick_top_level(documents, context)
            if resolved is not None:
                return resolved
            if len({d.identity.key for d in documents}) > 1:
                logger.debug(
                    "Several files are named after %s, not resolving", context.identifier
                )
                return None
            # A file named after the subprogram is its definition
            logger.debug("Using %s as the definition of %s", groups[0][0].uri, context.identifier)
            return ResolvedDefinition.file_start(groups[0][0].uri)

        if not self.workspace.naming.workspace_scan:
            return None
        logger.debug("Scanning the workspace for %s", context.identifier)
        documents = await self.open_all(identities)
        return self._pick_top_level(documents, context)

    def _pick_top_level(
        self, documents: Sequence[IndexedDocument], context: ResolutionContext
    ) -> Optional[ResolvedDefinition]:
        """Pick a top-level declaration, None if absent or declared in several files."""
        key = context.identifier.lower()
        matches = [
            (order, document, entry)
            for order, document in enumerate(documents)
            for entry in document.index.get_top_level()
            if entry.key == key
        ]
        if not matches:
            return None
        # A spec and its body are one unit, other file names make it ambiguous
        names = {document.identity.key for _, document, _ in matches}
        if len(names) > 1:
            logger.debug(
                "%s is declared in several files (%s), not resolving",
                context.identifier,
                ", ".join(sorted(names)),
            )
            return None
        _, document, entry = min(
            matches, key=lambda m: entry_rank(m[2], context.expected_base, context.role, m[0])
        )
        return ResolvedDefinition.from_entry(document.identity.uri, entry)


async def resolve_definition(
    workspace: WorkspaceContext,
    uri: str,
    text: str,
    position: types.Position,
    word: str,
) -> Optional[ResolvedDefinition]:
    """
    Resolve the word at a position to its definition.

    Args:
        workspace: Document provider, enumerator and naming configuration.
        uri: The current document uri.
        text: The current document text.
        position: The cursor position.
        word: The dotted word ending at the cursor word, e.g. "pkg.member".

    Returns:
        The ResolvedDefinition, or None when nothing is found.

    Raises:
        DocumentNotFoundError: If a related document cannot be opened.
    """
    identity = DocumentIdentity.from_uri(uri, workspace.naming)
    index = build_index(text, identity.kind)
    context = classify_context(text, index, position, word)
    if context is None:
        return None
    logger.debug(
        "Resolving %r (%s) in %s at %d:%d",
        word,
        context.role.value,
        uri,
        position.line,
        position.character,
    )
    resolver = DefinitionResolver(workspace, IndexedDocument(identity, index))
    return await resolver.resolve(context)
