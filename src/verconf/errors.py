from __future__ import annotations

from pathlib import Path


class VerconfError(Exception):
    """Base class for verconf errors."""


class ConfigParseError(VerconfError):
    """Raised when the config file is not valid YAML.

    ``line`` and ``column`` are 1-based and ``None`` when the parser could
    not locate the problem.
    """

    def __init__(
        self,
        message: str,
        *,
        path: Path | None = None,
        line: int | None = None,
        column: int | None = None,
    ) -> None:
        self.message = message
        self.path = path
        self.line = line
        self.column = column
        super().__init__(str(self))

    def __str__(self) -> str:
        where = str(self.path) if self.path is not None else "config"
        if self.line is not None:
            where += f", line {self.line}"
            if self.column is not None:
                where += f", column {self.column}"
        return (
            f"YAML syntax error in {where}: {self.message}. "
            "Check for missing colons, incorrect indentation, "
            "or unquoted special characters."
        )


class ConfigValidationError(VerconfError):
    """Raised when a document or patch has the wrong shape."""


class LockContentionError(VerconfError):
    """Raised when another live process holds the config lock."""


class FilesystemError(VerconfError):
    """Raised for filesystem failures while writing the config."""


class DiskFullError(FilesystemError):
    """Raised when the disk has no space left."""


class PermissionDeniedError(FilesystemError):
    """Raised when the target is not writable or the filesystem is read-only."""


class MigrationError(VerconfError):
    """Raised inside a migration step; reported through ``MigrationResult``."""


class RollbackError(VerconfError):
    """Raised when restoring a backup fails and state may be inconsistent."""
