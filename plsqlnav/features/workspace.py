"""
Workspace collaborators for the PL/SQL Language Server.

Definition resolution never touches the file system directly: it reads
documents through a DocumentProvider and discovers files through a
WorkspaceEnumerator, both handed to it in a WorkspaceContext. This keeps
every request independent and lets tests run against in-memory workspaces.
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from pygls import uris

from plsqlnav.config import NamingConfig
from plsqlnav.errors import DocumentNotFoundError

logger = logging.getLogger("plsqlnav")


class DocumentProvider(ABC):
    """Gives access to the text of documents."""

    @abstractmethod
    async def open_document(self, uri: str) -> str:
        """
        Return the text of a document.

        Raises:
            DocumentNotFoundError: If the uri does not exist.
        """
        ...


class WorkspaceEnumerator(ABC):
    """Lists the PL/SQL documents of a workspace."""

    @abstractmethod
    async def list_all_documents(self) -> List[str]:
        """Return the uris of all PL/SQL documents, in a stable order."""
        ...


@dataclass(frozen=True)
class WorkspaceContext:
    """Everything a definition request may consult besides its own document."""

    provider: DocumentProvider
    enumerator: WorkspaceEnumerator
    naming: NamingConfig


class PyglsDocumentProvider(DocumentProvider):
    """
    Reads documents through a pygls workspace.

    Open editor buffers are served from memory (unsaved changes included),
    other documents are read from disk in a worker thread.
    """

    def __init__(self, workspace):
        self.workspace = workspace

    def _read(self, uri: str) -> str:
        document = self.workspace.get_text_document(uri)
        return document.source

    async def open_document(self, uri: str) -> str:
        try:
            return await asyncio.to_thread(self._read, uri)
        except (OSError, UnicodeDecodeError) as e:
            raise DocumentNotFoundError(uri, str(e)) from e


class FileSystemEnumerator(WorkspaceEnumerator):
    """
    Walks workspace folders for files with a configured PL/SQL extension.

    Hidden directories (".git", ".venv", ...) are skipped.
    """

    def __init__(self, roots: Iterable[str], naming: NamingConfig):
        self.roots = [root for root in roots if root]
        self.naming = naming

    def _walk(self) -> List[str]:
        extensions = set(self.naming.all_extensions)
        found = set()
        for root in self.roots:
            for dirpath, dirnames, filenames in os.walk(root):
                dirnames[:] = [d for d in dirnames if not d.startswith(".")]
                for filename in filenames:
                    if Path(filename).suffix.lower() in extensions:
                        found.add(os.path.join(dirpath, filename))
        return sorted(found)

    async def list_all_documents(self) -> List[str]:
        paths = await asyncio.to_thread(self._walk)
        logger.debug("Found %d PL/SQL documents in %s", len(paths), self.roots)
        return [uri for uri in (uris.from_fs_path(path) for path in paths) if uri]


def workspace_roots(workspace) -> List[str]:
    """Get the file system roots of a pygls workspace (folders, else root path)."""
    roots: List[str] = []
    folders = getattr(workspace, "folders", None) or {}
    for folder in folders.values():
        path: Optional[str] = uris.to_fs_path(folder.uri)
        if path and path not in roots:
            roots.append(path)
    if not roots and workspace.root_path:
        roots.append(workspace.root_path)
    return roots
