"""Exceptions raised by the PL/SQL Language Server."""


class PlsqlNavError(Exception):
    """Base class for all plsqlnav errors."""


class DocumentNotFoundError(PlsqlNavError):
    """A document provider could not open the requested uri."""

    def __init__(self, uri: str, reason: str = ""):
        self.uri = uri
        message = f"Document not found: {uri}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class ConfigurationError(PlsqlNavError, ValueError):
    """Client supplied settings that cannot be applied."""
