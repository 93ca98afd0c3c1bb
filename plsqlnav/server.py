"""
plsqlnav - PL/SQL Language Server.

This module provides the main entry point for the PL/SQL LSP server,
implementing go-to-definition across package specs, bodies and standalone
subprogram files, and document symbols.
"""

import logging
from collections.abc import Mapping
from typing import Any, List, Optional

from lsprotocol import types
from pygls.cli import start_server
from pygls.lsp.server import LanguageServer

from plsqlnav.config import NamingConfig
from plsqlnav.errors import ConfigurationError, PlsqlNavError
from plsqlnav.features.definition import get_definition_location
from plsqlnav.features.pairing import DocumentIdentity
from plsqlnav.features.symbols import get_document_symbols
from plsqlnav.features.workspace import (
    FileSystemEnumerator,
    PyglsDocumentProvider,
    WorkspaceContext,
    workspace_roots,
)
from plsqlnav.logger_setup import set_log_level, setup_logging
from plsqlnav.parser import build_index

logger = logging.getLogger("plsqlnav")

# Section of the client settings holding the server configuration
SETTINGS_SECTION = "plsql"


class PlsqlLanguageServer(LanguageServer):
    """Language server implementation for PL/SQL sources."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.naming = NamingConfig()
        self.logger = setup_logging(self)
        self.logger.info("PL/SQL Language Server starting...")

    def update_settings(self, settings: Any) -> None:
        """
        Apply client settings on top of the current configuration.

        Invalid settings are reported and the previous configuration is kept.
        """
        try:
            naming = self.naming.with_settings(settings)
        except ConfigurationError as e:
            self.logger.warning("Ignoring invalid settings: %s", e)
            return
        self.naming = naming
        if naming.log_level:
            set_log_level(naming.log_level)
        self.logger.debug("Naming configuration: %s", naming)

    def workspace_context(self) -> WorkspaceContext:
        """Build the collaborators of one request from the live workspace."""
        naming = self.naming
        return WorkspaceContext(
            provider=PyglsDocumentProvider(self.workspace),
            enumerator=FileSystemEnumerator(workspace_roots(self.workspace), naming),
            naming=naming,
        )


def plsql_settings(settings: Any) -> Any:
    """Get the server section of a settings object, or the object itself."""
    if isinstance(settings, Mapping) and SETTINGS_SECTION in settings:
        return settings[SETTINGS_SECTION]
    return settings


server = PlsqlLanguageServer("plsqlnav", "v0.1.0")


# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------


@server.feature(types.INITIALIZE)
def initialize(ls: PlsqlLanguageServer, params: types.InitializeParams) -> None:
    """Read the naming configuration from the initialization options."""
    ls.logger.debug("Initialize: %s", params.initialization_options)
    ls.update_settings(plsql_settings(params.initialization_options))


@server.feature(types.WORKSPACE_DID_CHANGE_CONFIGURATION)
def did_change_configuration(
    ls: PlsqlLanguageServer, params: types.DidChangeConfigurationParams
) -> None:
    """Re-read the naming configuration when the client settings change."""
    ls.logger.debug("Configuration changed")
    ls.update_settings(plsql_settings(params.settings))


# -----------------------------------------------------------------------------
# Symbol Features
# -----------------------------------------------------------------------------


@server.feature(types.TEXT_DOCUMENT_DOCUMENT_SYMBOL)
def document_symbol(
    ls: PlsqlLanguageServer, params: types.DocumentSymbolParams
) -> List[types.DocumentSymbol]:
    """Return all the symbols defined in the given document."""
    ls.logger.debug("Document symbol requested: %s", params.text_document.uri)
    doc = ls.workspace.get_text_document(params.text_document.uri)
    identity = DocumentIdentity.from_uri(doc.uri, ls.naming)
    return get_document_symbols(build_index(doc.source, identity.kind))


# -----------------------------------------------------------------------------
# Navigation Features
# -----------------------------------------------------------------------------


@server.feature(types.TEXT_DOCUMENT_DEFINITION)
async def goto_definition(
    ls: PlsqlLanguageServer, params: types.DefinitionParams
) -> Optional[types.Location]:
    """Jump to the definition of the package or subprogram at the cursor."""
    ls.logger.debug("Definition requested: %s", params.text_document.uri)
    doc = ls.workspace.get_text_document(params.text_document.uri)
    try:
        return await get_definition_location(
            ls.workspace_context(), doc, params.position
        )
    except (PlsqlNavError, OSError) as e:
        ls.logger.warning("Definition lookup failed for %s: %s", doc.uri, e)
        return None


# -----------------------------------------------------------------------------
# Entry Point
# -----------------------------------------------------------------------------


def main() -> None:
    """Start the PL/SQL language server."""
    start_server(server)
