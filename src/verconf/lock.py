"""Cross-process lock based on a sentinel file.

The marker holds two lines: the owner's process id and the acquisition time
in milliseconds since the epoch.  Ownership is advisory.  A marker older than
``stale_after`` seconds, or one whose owner is no longer running, is
reclaimed by the next acquirer.
"""

from __future__ import annotations

import logging
import os
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator
from uuid import uuid4

from .errors import LockContentionError

logger = logging.getLogger(__name__)

STALE_AFTER = 5.0
ATTEMPTS = 10
DELAY = 0.1


@dataclass(frozen=True)
class LockRecord:
    pid: int
    timestamp_ms: int

    def render(self) -> str:
        return f"{self.pid}\n{self.timestamp_ms}"

    @classmethod
    def parse(cls, text: str) -> "LockRecord | None":
        parts = text.strip().split("\n")
        if len(parts) != 2:
            return None
        try:
            return cls(pid=int(parts[0]), timestamp_ms=int(parts[1]))
        except ValueError:
            return None


@dataclass(frozen=True)
class _Snapshot:
    """Marker content and mtime as seen when judging it."""

    text: str
    mtime_ns: int

    @classmethod
    def take(cls, path: Path) -> "_Snapshot":
        mtime_ns = os.stat(path).st_mtime_ns
        return cls(text=path.read_text(encoding="utf-8", errors="replace"), mtime_ns=mtime_ns)


# The marker vanished before it could be judged.
_MISSING = _Snapshot(text="", mtime_ns=-1)


def _now_ms() -> int:
    return int(time.time() * 1000)


def pid_alive(pid: int) -> bool:
    """Return ``True`` if process *pid* is running."""
    if pid <= 0:
        return False
    if os.name == "nt":  # pragma: no cover - platform specific
        return _pid_alive_windows(pid)
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but belongs to another user.
        return True
    return True


def _pid_alive_windows(pid: int) -> bool:  # pragma: no cover - platform specific
    import ctypes

    kernel32 = ctypes.windll.kernel32
    query_limited_information = 0x1000
    still_active = 259
    handle = kernel32.OpenProcess(query_limited_information, False, pid)
    if not handle:
        return False
    try:
        code = ctypes.c_ulong()
        if not kernel32.GetExitCodeProcess(handle, ctypes.byref(code)):
            return True
        return code.value == still_active
    finally:
        kernel32.CloseHandle(handle)


class LockFile:
    """Sentinel-file lock guarding writes to a single path."""

    def __init__(self, path: Path, *, stale_after: float = STALE_AFTER) -> None:
        self.path = Path(path)
        self.stale_after = stale_after

    def _create(self) -> bool:
        record = LockRecord(pid=os.getpid(), timestamp_ms=_now_ms())
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600)
        except FileExistsError:
            return False
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(record.render())
        except BaseException:
            self.path.unlink(missing_ok=True)
            raise
        return True

    def _age_seconds(self, record: LockRecord | None, mtime: float) -> float:
        if record is not None:
            return time.time() - record.timestamp_ms / 1000
        return time.time() - mtime

    def _abandoned(self) -> _Snapshot | None:
        """Return the current marker if it may be removed, else ``None``."""
        try:
            snapshot = _Snapshot.take(self.path)
        except FileNotFoundError:
            return _MISSING
        record = LockRecord.parse(snapshot.text)
        age = self._age_seconds(record, snapshot.mtime_ns / 1e9)
        if age > self.stale_after:
            logger.debug("Reclaiming stale lock %s (age %.1fs)", self.path, age)
            return snapshot
        if record is None:
            # A peer may sit between creating and filling the marker.
            return None
        if not pid_alive(record.pid):
            logger.debug("Reclaiming lock %s from dead process %d", self.path, record.pid)
            return snapshot
        return None

    def _reclaim(self, judged: _Snapshot) -> bool:
        """Move the abandoned marker aside; ``False`` if a peer replaced it first."""
        if judged is _MISSING:
            return True
        captured = self.path.with_name(f"{self.path.name}.{os.getpid()}.{uuid4().hex[:8]}")
        try:
            os.rename(self.path, captured)
        except FileNotFoundError:
            return True
        try:
            if _Snapshot.take(captured) == judged:
                return True
            # A peer took over in the meantime; hand its marker back.
            try:
                os.link(captured, self.path)
            except FileExistsError:
                pass
            return False
        finally:
            captured.unlink(missing_ok=True)

    def try_acquire(self) -> bool:
        """Take the lock without waiting.

        An abandoned marker is moved aside and acquisition retried once.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if self._create():
            return True
        judged = self._abandoned()
        if judged is None or not self._reclaim(judged):
            return False
        return self._create()

    def release(self) -> None:
        self.path.unlink(missing_ok=True)

    def acquire(self, attempts: int = ATTEMPTS, delay: float = DELAY) -> bool:
        """Call :meth:`try_acquire` up to *attempts* times, *delay* seconds apart."""
        for attempt in range(attempts):
            if self.try_acquire():
                return True
            if attempt < attempts - 1:
                time.sleep(delay)
        return False

    @contextmanager
    def held(self, attempts: int = ATTEMPTS, delay: float = DELAY) -> Iterator["LockFile"]:
        if not self.acquire(attempts, delay):
            raise LockContentionError(
                f"Config file is locked by another process ({self.path}). "
                "Wait a moment and try again."
            )
        try:
            yield self
        finally:
            self.release()


__all__ = ["LockFile", "LockRecord", "pid_alive", "STALE_AFTER", "ATTEMPTS", "DELAY"]
