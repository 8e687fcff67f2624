from .errors import (
    ConfigParseError,
    ConfigValidationError,
    DiskFullError,
    FilesystemError,
    LockContentionError,
    MigrationError,
    PermissionDeniedError,
    RollbackError,
    VerconfError,
)
from .migration import MigrationEngine, MigrationResult, MigrationState
from .schema import CURRENT_VERSION, ConfigDocument, PartialDocument, create_default
from .store import ConfigStore, LoadResult

__all__ = [
    "ConfigStore",
    "LoadResult",
    "ConfigDocument",
    "PartialDocument",
    "CURRENT_VERSION",
    "create_default",
    "MigrationEngine",
    "MigrationResult",
    "MigrationState",
    "VerconfError",
    "ConfigParseError",
    "ConfigValidationError",
    "LockContentionError",
    "FilesystemError",
    "DiskFullError",
    "PermissionDeniedError",
    "MigrationError",
    "RollbackError",
]
