"""
Definition finding functionality for the PL/SQL Language Server.

This module provides the go-to-definition feature, turning the result of
definition resolution into an LSP location.
"""

import logging
from typing import Optional

from lsprotocol import types
from pygls.workspace import TextDocument

from plsqlnav import utils
from plsqlnav.features.resolve import resolve_definition
from plsqlnav.features.workspace import WorkspaceContext

logger = logging.getLogger("plsqlnav")


async def get_definition_location(
    workspace: WorkspaceContext,
    doc: TextDocument,
    position: types.Position,
) -> Optional[types.Location]:
    """
    Get the definition location for the word at the given position.

    Args:
        workspace: The collaborators and naming configuration of the request.
        doc: The current document.
        position: The cursor position.

    Returns:
        Location of the definition, or None if not found.

    Raises:
        DocumentNotFoundError: If a related document cannot be read.
    """
    attribute_word = utils.get_attribute_word(doc, position)
    if not attribute_word:
        return None

    resolved = await resolve_definition(
        workspace, doc.uri, doc.source, position, attribute_word
    )
    if not resolved:
        logger.debug("No definition found for %s", attribute_word)
        return None

    if resolved.entry is None:
        # The whole file is the definition
        return utils.location_from_start(resolved.uri)

    return types.Location(uri=resolved.uri, range=resolved.range)
