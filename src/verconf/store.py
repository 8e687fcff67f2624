from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .atomic import classify_os_error, write_atomic
from .errors import (
    ConfigParseError,
    ConfigValidationError,
    VerconfError,
)
from .lock import ATTEMPTS, DELAY, STALE_AFTER, LockFile
from .merge import merge_section, merge_with_defaults
from .paths import CONFIG_FILENAME, LOCK_SUFFIX, default_base_dir
from .schema import CURRENT_VERSION, ConfigDocument, PartialDocument, create_default
from .serializer import deserialize, serialize

logger = logging.getLogger(__name__)


@dataclass
class LoadResult:
    """Outcome of :meth:`ConfigStore.load_with_diagnostics`.

    ``document`` is ``None`` when no usable config exists; ``error`` then
    says why, unless the file is simply absent.
    """

    document: ConfigDocument | None = None
    warnings: list[str] = field(default_factory=list)
    error: VerconfError | None = None
    upgraded: bool = False


class ConfigStore:
    """Load and save the configuration document under *base_dir*.

    Construct one per base directory and pass it to whatever needs the
    config.  Reads take no lock; writes are serialized through a lock
    marker next to the config file and land via an atomic rename.
    """

    def __init__(
        self,
        base_dir: Path | str | None = None,
        *,
        filename: str = CONFIG_FILENAME,
        lock_attempts: int = ATTEMPTS,
        lock_delay: float = DELAY,
        stale_after: float = STALE_AFTER,
    ) -> None:
        self.base_dir = Path(base_dir) if base_dir is not None else default_base_dir()
        self.path = self.base_dir / filename
        self.lock_path = self.path.with_name(self.path.name + LOCK_SUFFIX)
        self.lock_attempts = lock_attempts
        self.lock_delay = lock_delay
        self._lock = LockFile(self.lock_path, stale_after=stale_after)

    def exists(self) -> bool:
        return self.path.is_file()

    def locked(self):
        """Context manager holding the write lock; do not call :meth:`save` inside."""
        return self._lock.held(self.lock_attempts, self.lock_delay)

    # ----- reading -----

    def _read_partial(self) -> PartialDocument | None:
        try:
            text = self.path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise ConfigParseError("file is not valid UTF-8", path=self.path) from exc
        return deserialize(text, path=self.path)

    def load_with_diagnostics(self) -> LoadResult:
        """Load the document, reporting problems instead of raising them."""
        if not self.path.exists():
            return LoadResult()
        try:
            partial = self._read_partial()
        except FileNotFoundError:
            return LoadResult()
        except ConfigParseError as exc:
            logger.error("%s", exc)
            return LoadResult(error=exc)
        except OSError as exc:
            err = classify_os_error(exc, self.path)
            logger.error("Failed to read config %s: %s", self.path, exc)
            return LoadResult(error=err)
        if partial is None:
            err = ConfigValidationError(
                f"Invalid config format in {self.path}: expected a mapping "
                "with a numeric 'version' of at least 1"
            )
            logger.warning("%s", err)
            return LoadResult(error=err)

        warnings: list[str] = []
        doc = merge_with_defaults(partial, warnings)
        for message in warnings:
            logger.warning("Config %s: %s", self.path, message)

        upgraded = False
        if partial.version < CURRENT_VERSION:
            doc.version = CURRENT_VERSION
            upgraded = True
            try:
                self.save(doc)
            except VerconfError as exc:
                # The upgraded copy is still usable in memory.
                logger.warning("Config upgrade failed to save: %s", exc)
            else:
                logger.info(
                    "Config upgraded from v%d to v%d", partial.version, CURRENT_VERSION
                )
        elif partial.version > CURRENT_VERSION:
            logger.debug(
                "Config %s was written by a newer release (v%d)", self.path, partial.version
            )
        return LoadResult(document=doc, warnings=warnings, upgraded=upgraded)

    def load(self) -> ConfigDocument | None:
        """Return the stored document, or ``None`` if there is no usable one."""
        return self.load_with_diagnostics().document

    def load_or_create(self) -> ConfigDocument:
        """Return the stored document, or a default one; always fully populated."""
        doc = self.load()
        if doc is None:
            doc = create_default()
        return merge_with_defaults(PartialDocument.from_document(doc))

    # ----- writing -----

    def save(self, doc: ConfigDocument) -> ConfigDocument:
        """Persist *doc* and return the copy that was written.

        Raises :class:`LockContentionError` when another process keeps the
        lock past the retry budget, leaving the file untouched, and a
        :class:`FilesystemError` subclass when the write fails.
        """
        saved = replace(doc, version=max(doc.version, CURRENT_VERSION))
        try:
            with self.locked():
                self.base_dir.mkdir(parents=True, exist_ok=True, mode=0o700)
                write_atomic(self.path, serialize(saved))
        except OSError as exc:
            raise classify_os_error(exc, self.path) from exc
        logger.debug("Saved config %s (v%d)", self.path, saved.version)
        return saved

    def update(self, patch: Mapping[str, Any] | None = None, **sections: Any) -> ConfigDocument:
        """Replace whole top-level sections and save.

        Each value replaces the stored section entirely.  A plain mapping is
        filled from the section defaults, not from the stored section, so
        callers must pass complete sections to keep sibling fields.
        """
        changes = dict(patch or {})
        changes.update(sections)
        resolved = {name: merge_section(name, value) for name, value in changes.items()}
        doc = self.load_or_create()
        return self.save(replace(doc, **resolved))


__all__ = ["ConfigStore", "LoadResult"]
