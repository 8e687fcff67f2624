"""One-way migration from the legacy JSON layout to the versioned document.

A full migration runs through :class:`MigrationState` in order::

    NEEDED -> BACKED_UP -> TRANSFORMED -> WRITTEN -> CACHE_RESTRUCTURED -> DONE

The new document is written before any legacy cache file moves.  If the
process dies in between, the next run sees an existing config file, skips
the migration, and the cache files are still in their legacy location.

Profile settings stay in their per-profile ``*.settings.json`` files; the
document only records the path.
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any
from uuid import uuid4

from .errors import MigrationError, RollbackError
from .legacy import CACHE_FILES, LEGACY_CONFIG, SETTINGS_PROVIDERS, LegacyDocument
from .paths import BACKUP_DIR_PREFIX, CACHE_DIRNAME, expand_path
from .schema import AccountConfig, ConfigDocument, ProfileConfig, VariantConfig, create_default
from .store import ConfigStore

logger = logging.getLogger(__name__)


class MigrationState(Enum):
    NOT_NEEDED = "not-needed"
    NEEDED = "needed"
    BACKED_UP = "backed-up"
    TRANSFORMED = "transformed"
    WRITTEN = "written"
    CACHE_RESTRUCTURED = "cache-restructured"
    DONE = "done"
    FAILED = "failed"


@dataclass
class MigrationResult:
    """What a migration did, or got through before failing.

    ``reached`` is the last state completed, so a failed result tells how far
    the migration got.
    """

    success: bool
    state: MigrationState
    reached: MigrationState
    backup_path: Path | None = None
    migrated_items: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    error: str | None = None
    dry_run: bool = False


def _portable(path: Path) -> str:
    try:
        return "~/" + path.resolve().relative_to(Path.home().resolve()).as_posix()
    except ValueError:
        return str(path)


class MigrationEngine:
    def __init__(self, store: ConfigStore) -> None:
        self.store = store
        self.base_dir = store.base_dir
        self.cache_dir = self.base_dir / CACHE_DIRNAME

    # ----- detection -----

    def needs_migration(self) -> bool:
        """``True`` if a legacy config exists and the versioned one does not."""
        return (self.base_dir / LEGACY_CONFIG).is_file() and not self.store.exists()

    def needs_profile_migration(self) -> bool:
        """``True`` if the current document lacks profiles still listed in the legacy file."""
        legacy = LegacyDocument.read(self.base_dir)
        profiles = legacy.api_profiles()
        if not profiles or not self.store.exists():
            return False
        doc = self.store.load()
        if doc is None:
            return False
        return any(name not in doc.profiles for name in profiles)

    def backup_directories(self) -> list[Path]:
        """Backup snapshots, most recent first."""
        if not self.base_dir.is_dir():
            return []
        found = [
            p for p in self.base_dir.iterdir()
            if p.is_dir() and p.name.startswith(BACKUP_DIR_PREFIX)
        ]
        return sorted(found, key=lambda p: (p.stat().st_mtime, p.name), reverse=True)

    # ----- steps -----

    def _backup_target(self) -> Path:
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        target = self.base_dir / f"{BACKUP_DIR_PREFIX}{stamp}"
        try:
            target.mkdir(parents=True, exist_ok=False)
            return target
        except FileExistsError:
            pass
        while True:
            candidate = target.with_name(f"{target.name}-{uuid4().hex[:8]}")
            try:
                candidate.mkdir(exist_ok=False)
                return candidate
            except FileExistsError:
                continue

    def _create_backup(self, legacy: LegacyDocument) -> Path:
        target = self._backup_target()
        for src in legacy.backup_sources():
            shutil.copy2(src, target / src.name)
        logger.debug("Backed up %d legacy files to %s", len(legacy.backup_sources()), target)
        return target

    def _profile_from_legacy(self, name: str, settings: Any, warnings: list[str]) -> ProfileConfig | None:
        if not isinstance(settings, str) or not settings:
            warnings.append(f"Skipped {name}: settings path is not a string")
            return None
        resolved = expand_path(settings)
        if not resolved.is_absolute():
            resolved = self.base_dir / resolved
        if not resolved.exists():
            warnings.append(f"Skipped {name}: settings file not found at {settings}")
            return None
        return ProfileConfig(type="api", settings=settings)

    def _build_document(
        self, legacy: LegacyDocument, items: list[str], warnings: list[str]
    ) -> ConfigDocument:
        doc = create_default()
        doc.default = legacy.default_profile()

        accounts = legacy.accounts()
        if accounts:
            now = datetime.now(timezone.utc).isoformat()
            for name, meta in accounts.items():
                meta = meta if isinstance(meta, Mapping) else {}
                created = meta.get("created")
                last_used = meta.get("last_used")
                doc.accounts[name] = AccountConfig(
                    created=created if isinstance(created, str) and created else now,
                    last_used=last_used if isinstance(last_used, str) else None,
                )
            items.append("profiles.json → config.yaml.accounts")

        variants = legacy.variants()
        if variants:
            for name, raw in variants.items():
                provider = raw.get("provider") if isinstance(raw, Mapping) else None
                if not isinstance(provider, str) or not provider:
                    warnings.append(f"Skipped variant {name}: no provider given")
                    continue
                account = raw.get("account")
                settings = raw.get("settings")
                doc.cliproxy.variants[name] = VariantConfig(
                    provider=provider,
                    account=account if isinstance(account, str) and account else None,
                    settings=settings if isinstance(settings, str) and settings else None,
                )
            items.append("config.json.cliproxy → config.yaml.cliproxy.variants")

        for name, settings in legacy.api_profiles().items():
            profile = self._profile_from_legacy(name, settings, warnings)
            if profile is None:
                continue
            doc.profiles[name] = profile
            items.append(f"config.json.profiles.{name} → config.yaml (settings: {settings})")

        for provider in SETTINGS_PROVIDERS:
            settings_file = self.base_dir / f"{provider}.settings.json"
            if settings_file.is_file():
                doc.cliproxy.variants[provider] = VariantConfig(
                    provider=provider, settings=_portable(settings_file)
                )
                items.append(f"{settings_file.name} → config.yaml.cliproxy.variants.{provider}")
        return doc

    def _restructure_cache(self, items: list[str], *, dry_run: bool) -> None:
        for legacy_name, cache_name in CACHE_FILES:
            src = self.base_dir / legacy_name
            if not src.is_file():
                continue
            if not dry_run:
                self.cache_dir.mkdir(parents=True, exist_ok=True)
                src.replace(self.cache_dir / cache_name)
            items.append(f"{legacy_name} → {CACHE_DIRNAME}/{cache_name}")

    # ----- operations -----

    def migrate(self, dry_run: bool = False, *, force: bool = False) -> MigrationResult:
        """Convert the legacy layout into a versioned config file.

        With *dry_run* nothing is written, but the result lists what would
        have been migrated.  Unless *force* is given, nothing happens when
        :meth:`needs_migration` is ``False``.
        """
        items: list[str] = []
        warnings: list[str] = []
        if not force and not self.needs_migration():
            return MigrationResult(
                success=True,
                state=MigrationState.NOT_NEEDED,
                reached=MigrationState.NOT_NEEDED,
                dry_run=dry_run,
            )

        reached = MigrationState.NEEDED
        backup_path: Path | None = None
        try:
            legacy = LegacyDocument.read(self.base_dir)
            if not legacy.exists:
                raise MigrationError(f"No readable legacy config in {self.base_dir}")
            if not dry_run:
                backup_path = self._create_backup(legacy)
            reached = MigrationState.BACKED_UP

            doc = self._build_document(legacy, items, warnings)
            reached = MigrationState.TRANSFORMED

            if not dry_run:
                self.store.save(doc)
            reached = MigrationState.WRITTEN

            self._restructure_cache(items, dry_run=dry_run)
            reached = MigrationState.CACHE_RESTRUCTURED
        except Exception as exc:
            logger.error("Migration failed after %s: %s", reached.value, exc)
            return MigrationResult(
                success=False,
                state=MigrationState.FAILED,
                reached=reached,
                backup_path=backup_path,
                migrated_items=items,
                warnings=warnings,
                error=f"{exc}. Retry with migrate().",
                dry_run=dry_run,
            )
        return MigrationResult(
            success=True,
            state=MigrationState.DONE,
            reached=MigrationState.DONE,
            backup_path=backup_path,
            migrated_items=items,
            warnings=warnings,
            dry_run=dry_run,
        )

    def migrate_missing_profiles(self) -> MigrationResult:
        """Copy legacy profiles absent from the current document into it.

        A profile present in both with different settings keeps the current
        value and yields one collision warning.
        """
        items: list[str] = []
        warnings: list[str] = []
        try:
            legacy = LegacyDocument.read(self.base_dir)
            profiles = legacy.api_profiles()
            doc = self.store.load() if profiles else None
            if doc is None:
                return MigrationResult(
                    success=True,
                    state=MigrationState.NOT_NEEDED,
                    reached=MigrationState.NOT_NEEDED,
                )
            modified = False
            for name, settings in profiles.items():
                existing = doc.profiles.get(name)
                if existing is not None:
                    if existing.settings != settings:
                        warnings.append(
                            f'Profile "{name}" exists in both configs with different '
                            f"settings - keeping existing ({existing.settings}), "
                            f"skipping legacy ({settings})"
                        )
                    continue
                profile = self._profile_from_legacy(name, settings, warnings)
                if profile is None:
                    continue
                doc.profiles[name] = profile
                items.append(name)
                modified = True
            if modified:
                self.store.save(doc)
        except Exception as exc:
            logger.error("Profile migration failed: %s", exc)
            return MigrationResult(
                success=False,
                state=MigrationState.FAILED,
                reached=MigrationState.TRANSFORMED if items else MigrationState.NEEDED,
                migrated_items=items,
                warnings=warnings,
                error=f"{exc}. Retry with migrate_missing_profiles().",
            )
        return MigrationResult(
            success=True,
            state=MigrationState.DONE,
            reached=MigrationState.DONE,
            migrated_items=items,
            warnings=warnings,
        )

    def rollback(self, backup_path: Path | str) -> bool:
        """Restore the legacy layout from *backup_path*.

        Returns ``False`` and logs an error if the backup is missing or any
        step fails; a failed rollback may leave both layouts half present.
        """
        backup = Path(backup_path)
        if not backup.is_dir():
            logger.error("Backup not found: %s", backup)
            return False
        try:
            with self.store.locked():
                self.store.path.unlink(missing_ok=True)
            if self.cache_dir.is_dir():
                for legacy_name, cache_name in CACHE_FILES:
                    cached = self.cache_dir / cache_name
                    if cached.is_file():
                        cached.replace(self.base_dir / legacy_name)
                if not any(self.cache_dir.iterdir()):
                    self.cache_dir.rmdir()
            for entry in backup.iterdir():
                if entry.is_file():
                    shutil.copy2(entry, self.base_dir / entry.name)
        except Exception as exc:
            err = RollbackError(
                f"Rollback from {backup} failed: {exc}. The config directory may be "
                f"inconsistent; copy the files in {backup} back by hand."
            )
            logger.error("%s", err)
            return False
        logger.info("Restored legacy config from %s", backup)
        return True

    def auto_migrate(self) -> MigrationResult | None:
        """Best-effort migration for startup; never raises.

        Returns the result of whatever ran, or ``None`` when nothing was due.
        """
        if os.getenv("VERCONF_SKIP_MIGRATION") == "1":
            return None
        try:
            if self.needs_migration():
                result = self.migrate(dry_run=False)
                if result.success:
                    logger.info(
                        "Migrated to versioned config %s (%d items, backup %s). "
                        "Undo with rollback(%r).",
                        self.store.path,
                        len(result.migrated_items),
                        result.backup_path,
                        str(result.backup_path),
                    )
                else:
                    logger.warning(
                        "Migration failed - using legacy config: %s", result.error
                    )
                for message in result.warnings:
                    logger.warning("%s", message)
                return result
            if self.needs_profile_migration():
                result = self.migrate_missing_profiles()
                if result.migrated_items:
                    logger.info(
                        "Migrated legacy profiles to %s: %s",
                        self.store.path,
                        ", ".join(result.migrated_items),
                    )
                for message in result.warnings:
                    logger.warning("%s", message)
                return result
        except Exception as exc:
            logger.warning("Automatic migration skipped: %s", exc)
        return None


__all__ = ["MigrationEngine", "MigrationResult", "MigrationState"]
