"""
File naming configuration for the PL/SQL Language Server.

Real workspaces disagree on how package specs, bodies and standalone
subprograms are stored on disk, so the extension of each file role and the
way a referenced name maps onto a file name are client settings.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from plsqlnav.errors import ConfigurationError

logger = logging.getLogger("plsqlnav")

DEFAULT_SPEC_EXTENSIONS = (".pks", ".pkh", ".spc")
DEFAULT_BODY_EXTENSIONS = (".pkb", ".bdy")
DEFAULT_COMBINED_EXTENSIONS = (".sql", ".pkg", ".pls", ".plsql")
DEFAULT_STANDALONE_EXTENSIONS = (".fnc", ".prc")

# Exact base name first, then the common "<prefix>_<name>" convention
DEFAULT_BASE_NAME_PATTERNS = ("{name}", "*_{name}")

# Keys of the "extensions" settings object, mapped to NamingConfig fields
_ROLE_FIELDS = {
    "spec": "spec_extensions",
    "body": "body_extensions",
    "combined": "combined_extensions",
    "standalone": "standalone_extensions",
}


def _normalize_extensions(role: str, value: Any) -> Tuple[str, ...]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        raise ConfigurationError(
            f"extensions.{role} must be a list of strings, got {type(value).__name__}"
        )
    normalized = []
    for ext in value:
        if not isinstance(ext, str) or not ext.strip(".").strip():
            raise ConfigurationError(f"Invalid extension in extensions.{role}: {ext!r}")
        ext = ext.strip().lower()
        if not ext.startswith("."):
            ext = "." + ext
        if ext not in normalized:
            normalized.append(ext)
    return tuple(normalized)


@dataclass(frozen=True)
class NamingConfig:
    """
    How PL/SQL sources are laid out on disk.

    Attributes:
        spec_extensions: Extensions of package specification files.
        body_extensions: Extensions of package body files.
        combined_extensions: Extensions of files holding spec and body together
            (also used by plain scripts and standalone subprograms).
        standalone_extensions: Extensions dedicated to standalone functions and
            procedures.
        base_name_patterns: Glob patterns (with a ``{name}`` placeholder) a file
            base name must match to be considered the home of a referenced name.
            Earlier patterns rank higher.
        workspace_scan: Scan every workspace document when no file named after
            a standalone name or a qualifying package declares it.
    """

    spec_extensions: Tuple[str, ...] = DEFAULT_SPEC_EXTENSIONS
    body_extensions: Tuple[str, ...] = DEFAULT_BODY_EXTENSIONS
    combined_extensions: Tuple[str, ...] = DEFAULT_COMBINED_EXTENSIONS
    standalone_extensions: Tuple[str, ...] = DEFAULT_STANDALONE_EXTENSIONS
    base_name_patterns: Tuple[str, ...] = DEFAULT_BASE_NAME_PATTERNS
    workspace_scan: bool = True
    log_level: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        seen: Dict[str, str] = {}
        for role, attr in _ROLE_FIELDS.items():
            for ext in getattr(self, attr):
                if ext in seen:
                    raise ConfigurationError(
                        f"Extension {ext} is used for both {seen[ext]} and {role} files"
                    )
                seen[ext] = role
        for pattern in self.base_name_patterns:
            if "{name}" not in pattern:
                raise ConfigurationError(
                    f"File name pattern {pattern!r} has no {{name}} placeholder"
                )
            try:
                pattern.format(name="x")
            except (KeyError, IndexError, ValueError) as e:
                raise ConfigurationError(
                    f"Invalid file name pattern {pattern!r}: {e}"
                ) from e

    @property
    def all_extensions(self) -> Tuple[str, ...]:
        return (
            self.spec_extensions
            + self.body_extensions
            + self.combined_extensions
            + self.standalone_extensions
        )

    def role_for_extension(self, extension: str) -> Optional[str]:
        """Return "spec", "body", "combined" or "standalone" for an extension."""
        extension = extension.lower()
        for role, attr in _ROLE_FIELDS.items():
            if extension in getattr(self, attr):
                return role
        return None

    def with_settings(self, settings: Optional[Mapping[str, Any]]) -> "NamingConfig":
        """
        Return a copy of this configuration updated with client settings.

        Args:
            settings: The ``plsql`` settings object, using LSP camelCase keys:
                ``extensions`` ({role: [ext, ...]}), ``fileNamePatterns``,
                ``workspaceScan`` and ``logLevel``. Missing keys are kept.

        Raises:
            ConfigurationError: If a value has the wrong type or the result
                is inconsistent.
        """
        if not settings:
            return self
        if not isinstance(settings, Mapping):
            raise ConfigurationError(
                f"Settings must be an object, got {type(settings).__name__}"
            )

        changes: Dict[str, Any] = {}
        extensions = settings.get("extensions")
        if extensions is not None:
            if not isinstance(extensions, Mapping):
                raise ConfigurationError("extensions must be an object")
            for role, value in extensions.items():
                if role not in _ROLE_FIELDS:
                    raise ConfigurationError(f"Unknown file role: {role!r}")
                changes[_ROLE_FIELDS[role]] = _normalize_extensions(role, value)

        patterns = settings.get("fileNamePatterns")
        if patterns is not None:
            if isinstance(patterns, str) or not isinstance(patterns, Iterable):
                raise ConfigurationError("fileNamePatterns must be a list of strings")
            if not all(isinstance(p, str) for p in patterns):
                raise ConfigurationError("fileNamePatterns must be a list of strings")
            changes["base_name_patterns"] = tuple(patterns)

        workspace_scan = settings.get("workspaceScan")
        if workspace_scan is not None:
            if not isinstance(workspace_scan, bool):
                raise ConfigurationError("workspaceScan must be a boolean")
            changes["workspace_scan"] = workspace_scan

        log_level = settings.get("logLevel")
        if log_level is not None:
            changes["log_level"] = str(log_level)

        logger.debug("Applying naming settings: %s", changes)
        return replace(self, **changes)

    @classmethod
    def from_settings(cls, settings: Optional[Mapping[str, Any]]) -> "NamingConfig":
        return cls().with_settings(settings)
