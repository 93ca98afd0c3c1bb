"""
Shared test fixtures and utilities for plsqlnav tests.
"""

import asyncio
from pathlib import Path
from typing import Dict, List, Optional
from unittest.mock import Mock

import pytest
from lsprotocol.types import (
    DefinitionParams,
    Location,
    Position,
    TextDocumentIdentifier,
)
from pygls.workspace import TextDocument

from plsqlnav import utils
from plsqlnav.config import NamingConfig
from plsqlnav.errors import DocumentNotFoundError
from plsqlnav.features.workspace import (
    DocumentProvider,
    WorkspaceContext,
    WorkspaceEnumerator,
)
from plsqlnav.server import PlsqlLanguageServer, goto_definition

FIXTURES_DIR = Path(__file__).parent / "fixtures"

WORKSPACE_URI = "file:///workspace"


# =============================================================================
# In-memory workspace
# =============================================================================


class InMemoryWorkspace(DocumentProvider, WorkspaceEnumerator):
    """
    A workspace whose documents live in a dict.

    Documents are addressed by file name relative to the workspace root;
    every open is recorded in `opened` and every listing counted in `listings`.
    """

    def __init__(self, documents: Dict[str, str]):
        self.documents = {self.uri(name): text for name, text in documents.items()}
        self.opened: List[str] = []
        self.listings = 0

    @staticmethod
    def uri(name: str) -> str:
        return f"{WORKSPACE_URI}/{name}"

    @classmethod
    def from_fixtures(cls) -> "InMemoryWorkspace":
        return cls(
            {
                path.name: path.read_text(encoding="utf-8")
                for path in sorted(FIXTURES_DIR.iterdir())
                if path.is_file()
            }
        )

    async def open_document(self, uri: str) -> str:
        self.opened.append(uri)
        if uri not in self.documents:
            raise DocumentNotFoundError(uri)
        return self.documents[uri]

    async def list_all_documents(self) -> List[str]:
        self.listings += 1
        return sorted(self.documents)

    def context(self, naming: Optional[NamingConfig] = None) -> WorkspaceContext:
        return WorkspaceContext(self, self, naming or NamingConfig())


@pytest.fixture
def fixture_workspace():
    """The workspace made of the files in tests/fixtures."""
    return InMemoryWorkspace.from_fixtures()


# =============================================================================
# Basic Mocks
# =============================================================================


@pytest.fixture
def mock_language_server():
    """Create a mock PlsqlLanguageServer."""
    ls = Mock(spec=PlsqlLanguageServer)
    ls.logger = Mock()
    ls.logger.info = Mock()
    ls.logger.debug = Mock()
    ls.naming = NamingConfig()
    ls.workspace = Mock()
    return ls


# =============================================================================
# PL/SQL Source Test Harness
# =============================================================================


class PlsqlTestHarness:
    """
    Test harness for PL/SQL LSP features.

    Opens a document of an in-memory workspace in a mock language server
    and drives the definition handler against it.
    """

    def __init__(self, mock_language_server: Mock, workspace: InMemoryWorkspace):
        self.ls = mock_language_server
        self.workspace = workspace
        self.doc: Optional[TextDocument] = None

    def setup(
        self, name: str, source: Optional[str] = None, naming: Optional[NamingConfig] = None
    ) -> "PlsqlTestHarness":
        """
        Open a document of the workspace.

        Args:
            name: File name of the document.
            source: Text of the document, added to the workspace when given.
            naming: Naming configuration of the server.

        Returns:
            self for chaining.
        """
        uri = self.workspace.uri(name)
        if source is not None:
            self.workspace.documents[uri] = source
        if naming is not None:
            self.ls.naming = naming
        self.doc = TextDocument(uri, source=self.workspace.documents[uri])
        self.ls.workspace.get_text_document.return_value = self.doc
        self.ls.workspace_context.return_value = self.workspace.context(self.ls.naming)
        return self

    def goto_definition(self, line: int = 0, character: int = 0) -> Optional[Location]:
        """Call goto_definition and return the result."""
        params = DefinitionParams(
            text_document=TextDocumentIdentifier(uri=self.doc.uri),
            position=Position(line=line, character=character),
        )
        return asyncio.run(goto_definition(self.ls, params))

    def word_at(self, line: int, character: int) -> Optional[str]:
        return utils.get_attribute_word(self.doc, Position(line=line, character=character))

    def assert_definition_at(
        self,
        expected_file: str,
        expected_line: int,
        expected_char: int = 0,
        cursor_line: int = 0,
        cursor_char: int = 0,
        word: Optional[str] = None,
    ) -> None:
        """Assert that goto_definition returns a location at the expected position."""
        if word is not None:
            found = self.word_at(cursor_line, cursor_char)
            assert found is not None and found.endswith(word), (
                f"Expected cursor on {word!r}, got {found!r}"
            )
        result = self.goto_definition(cursor_line, cursor_char)
        assert result is not None, "Expected a definition location, got None"
        assert isinstance(result, Location)
        assert result.uri == self.workspace.uri(expected_file), (
            f"Expected {expected_file}, got {result.uri}"
        )
        assert result.range.start.line == expected_line, (
            f"Expected line {expected_line}, got {result.range.start.line}"
        )
        assert result.range.start.character == expected_char, (
            f"Expected char {expected_char}, got {result.range.start.character}"
        )

    def assert_no_definition(self, cursor_line: int = 0, cursor_char: int = 0) -> None:
        """Assert that goto_definition returns None."""
        result = self.goto_definition(cursor_line, cursor_char)
        assert result is None, f"Expected None, got {result}"


@pytest.fixture
def plsql_harness(mock_language_server, fixture_workspace):
    """Create a PlsqlTestHarness over the fixture workspace."""
    return PlsqlTestHarness(mock_language_server, fixture_workspace)


@pytest.fixture
def workspace_factory():
    """The in-memory workspace class, for tests building their own workspace."""
    return InMemoryWorkspace
