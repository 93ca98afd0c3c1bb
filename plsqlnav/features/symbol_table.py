"""
Declaration index for the PL/SQL Language Server.

A DeclarationIndex is the flat, position-ordered table of named declarations
found in one document. It is built on demand for every request and is used
by definition resolution and document symbols.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from lsprotocol import types


class ConstructKind(Enum):
    """The closed set of declaration kinds the index knows about."""

    PACKAGE_SPEC = "package_spec"
    PACKAGE_BODY = "package_body"
    FUNCTION = "function"
    PROCEDURE = "procedure"
    NESTED_FUNCTION = "nested_function"
    NESTED_PROCEDURE = "nested_procedure"

    @property
    def base(self) -> str:
        """"package", "function" or "procedure", ignoring section and nesting."""
        if self in (ConstructKind.PACKAGE_SPEC, ConstructKind.PACKAGE_BODY):
            return "package"
        if self in (ConstructKind.FUNCTION, ConstructKind.NESTED_FUNCTION):
            return "function"
        return "procedure"

    @property
    def is_package(self) -> bool:
        return self.base == "package"

    @property
    def is_nested(self) -> bool:
        return self in (ConstructKind.NESTED_FUNCTION, ConstructKind.NESTED_PROCEDURE)


class Section(Enum):
    SPEC = "spec"
    BODY = "body"


def _key(position: types.Position):
    return (position.line, position.character)


@dataclass(eq=False)
class DeclarationEntry:
    """
    A named declaration in a document.

    Attributes:
        name: The declared name as written (quotes removed).
        kind: The construct kind.
        section: SPEC for package specifications and their members, BODY otherwise.
        position: Position of the opening token (``create`` or the keyword).
        keyword_range: Range of the package/function/procedure keyword.
        selection_range: Range of the declared name.
        parent: The enclosing declaration, None at top level.
        schema: Schema qualifier written before the name, if any.
        forward: True for a signature terminated by ``;`` without a body.
        end: Position after the closing ``end ...;``, None if never closed.
    """

    name: str
    kind: ConstructKind
    section: Section
    position: types.Position
    keyword_range: types.Range
    selection_range: types.Range
    parent: Optional["DeclarationEntry"] = None
    schema: Optional[str] = None
    forward: bool = False
    end: Optional[types.Position] = None
    children: List["DeclarationEntry"] = field(default_factory=list)

    @property
    def key(self) -> str:
        """Case-insensitive lookup key."""
        return self.name.lower()

    @property
    def scope(self) -> Optional[str]:
        """Name of the enclosing declaration."""
        return self.parent.name if self.parent is not None else None

    @property
    def package(self) -> Optional["DeclarationEntry"]:
        """The nearest enclosing package (or self for a package entry)."""
        entry: Optional[DeclarationEntry] = self
        while entry is not None:
            if entry.kind.is_package:
                return entry
            entry = entry.parent
        return None

    @property
    def range(self) -> types.Range:
        """Range from the opening token to the end of the declared name."""
        return types.Range(start=self.position, end=self.selection_range.end)

    @property
    def full_range(self) -> types.Range:
        """Range from the opening token to the end of the declaration."""
        return types.Range(start=self.position, end=self.end or self.selection_range.end)

    def contains(self, position: types.Position) -> bool:
        """Check if a position lies between the opening token and the closing end."""
        if self.forward:
            return False
        if _key(position) < _key(self.position):
            return False
        return self.end is None or _key(position) <= _key(self.end)

    def touches_declaration(self, position: types.Position) -> bool:
        """Check if a position is on the declaration keyword or the declared name."""
        for rng in (self.keyword_range, self.selection_range):
            if _key(rng.start) <= _key(position) <= _key(rng.end):
                return True
        return False


class DeclarationIndex:
    """
    All declarations of one document, in order of occurrence.

    Provides lookups by name and by scope, and the chain of declarations
    enclosing a position (for nearest-scope resolution).
    """

    def __init__(self):
        self.entries: List[DeclarationEntry] = []
        self._by_name: Dict[str, List[DeclarationEntry]] = {}

    def add(self, entry: DeclarationEntry) -> None:
        """Add a declaration entry to the index."""
        self.entries.append(entry)
        self._by_name.setdefault(entry.key, []).append(entry)
        if entry.parent is not None:
            entry.parent.children.append(entry)

    def __iter__(self):
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def get_by_name(self, name: str) -> List[DeclarationEntry]:
        """Get all declarations with the given name (case-insensitive)."""
        return self._by_name.get(name.lower(), [])

    def get_top_level(self) -> List[DeclarationEntry]:
        """Get the declarations that are not enclosed by anything."""
        return [entry for entry in self.entries if entry.parent is None]

    def get_packages(self, name: Optional[str] = None) -> List[DeclarationEntry]:
        """Get package spec/body entries, optionally only those with a given name."""
        return [
            entry
            for entry in self.entries
            if entry.kind.is_package and (name is None or entry.key == name.lower())
        ]

    def get_members(
        self, package_name: str, name: str, section: Optional[Section] = None
    ) -> List[DeclarationEntry]:
        """Get the members called name declared directly in a package."""
        return [
            entry
            for entry in self.get_by_name(name)
            if entry.parent is not None
            and entry.parent.kind.is_package
            and entry.parent.key == package_name.lower()
            and (section is None or entry.section is section)
        ]

    def enclosing_chain(self, position: types.Position) -> List[DeclarationEntry]:
        """
        Get the declarations containing a position, innermost first.

        Args:
            position: The cursor position.

        Returns:
            The enclosing entries; empty when the position is at top level.
        """
        chain = [entry for entry in self.entries if entry.contains(position)]
        # Entries are ordered by start, so later starters are nested deeper
        chain.sort(key=lambda entry: _key(entry.position), reverse=True)
        return chain

    def declaration_at(self, position: types.Position) -> Optional[DeclarationEntry]:
        """Get the entry whose keyword or name is under the cursor."""
        for entry in self.entries:
            if entry.touches_declaration(position):
                return entry
        return None
