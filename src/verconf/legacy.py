"""Read-only access to the pre-versioning JSON layout."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

LEGACY_CONFIG = "config.json"
LEGACY_PROFILES = "profiles.json"
SETTINGS_SUFFIX = ".settings.json"

# Built-in OAuth providers whose settings file becomes a variant.
SETTINGS_PROVIDERS: tuple[str, ...] = ("gemini", "codex", "agy", "qwen", "iflow")

# (legacy file name, name inside the cache directory)
CACHE_FILES: tuple[tuple[str, str], ...] = (
    ("usage-cache.json", "usage.json"),
    ("update-check.json", "update-check.json"),
)


def read_json_safe(path: Path) -> dict[str, Any] | None:
    """Return the JSON object in *path*, or ``None`` if absent or unreadable."""
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable legacy file %s: %s", path, exc)
        return None
    if not isinstance(data, dict):
        logger.warning("Ignoring legacy file %s: top level is not an object", path)
        return None
    return data


def _mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


@dataclass
class LegacyDocument:
    """Snapshot of the legacy files found in *base_dir*."""

    base_dir: Path
    config: dict[str, Any] | None = None
    profiles_meta: dict[str, Any] | None = None
    settings_files: list[Path] = field(default_factory=list)

    @classmethod
    def read(cls, base_dir: Path) -> "LegacyDocument":
        base_dir = Path(base_dir)
        settings = sorted(base_dir.glob(f"*{SETTINGS_SUFFIX}")) if base_dir.is_dir() else []
        return cls(
            base_dir=base_dir,
            config=read_json_safe(base_dir / LEGACY_CONFIG),
            profiles_meta=read_json_safe(base_dir / LEGACY_PROFILES),
            settings_files=[p for p in settings if p.is_file()],
        )

    @property
    def exists(self) -> bool:
        return self.config is not None

    def api_profiles(self) -> dict[str, Any]:
        """Profile name to settings path, from ``config.json``."""
        return _mapping((self.config or {}).get("profiles"))

    def variants(self) -> dict[str, Any]:
        return _mapping((self.config or {}).get("cliproxy"))

    def accounts(self) -> dict[str, Any]:
        return _mapping((self.profiles_meta or {}).get("profiles"))

    def default_profile(self) -> str | None:
        value = (self.profiles_meta or {}).get("default")
        return value if isinstance(value, str) and value else None

    def cache_files(self) -> list[Path]:
        return [
            self.base_dir / name
            for name, _ in CACHE_FILES
            if (self.base_dir / name).is_file()
        ]

    def backup_sources(self) -> list[Path]:
        """Every legacy file a backup must contain."""
        primary = [
            self.base_dir / name
            for name in (LEGACY_CONFIG, LEGACY_PROFILES)
            if (self.base_dir / name).is_file()
        ]
        return primary + self.cache_files() + list(self.settings_files)


__all__ = [
    "LegacyDocument",
    "read_json_safe",
    "LEGACY_CONFIG",
    "LEGACY_PROFILES",
    "SETTINGS_PROVIDERS",
    "CACHE_FILES",
]
