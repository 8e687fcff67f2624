from __future__ import annotations

import errno
import os
from pathlib import Path

from .errors import DiskFullError, FilesystemError, PermissionDeniedError

_NO_SPACE = {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)}
_NO_ACCESS = {errno.EACCES, errno.EPERM, errno.EROFS}


def classify_os_error(exc: OSError, target: Path) -> FilesystemError:
    """Map *exc* to a :class:`FilesystemError` carrying a next step."""
    if exc.errno in _NO_SPACE:
        return DiskFullError(f"Disk full - cannot save {target}. Free up disk space and try again.")
    if exc.errno in _NO_ACCESS or isinstance(exc, PermissionError):
        return PermissionDeniedError(
            f"Cannot write {target} - check file permissions or whether the "
            f"filesystem is read-only: {exc.strerror or exc}"
        )
    return FilesystemError(f"Failed to write {target}: {exc}")


def temp_path_for(path: Path) -> Path:
    """Sibling temporary path, unique per writing process."""
    return path.with_name(f"{path.name}.tmp.{os.getpid()}")


def write_atomic(path: Path, data: str | bytes, mode: int = 0o600) -> None:
    """Replace *path* with *data* so readers see the old or new file, never half.

    The temporary file is removed before any error propagates.
    """
    path = Path(path)
    tmp = temp_path_for(path)
    payload = data.encode("utf-8") if isinstance(data, str) else data
    try:
        fd = os.open(tmp, os.O_CREAT | os.O_WRONLY | os.O_TRUNC, mode)
        with os.fdopen(fd, "wb") as fh:
            fh.write(payload)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, path)
    except OSError as exc:
        tmp.unlink(missing_ok=True)
        raise classify_os_error(exc, path) from exc
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


__all__ = ["write_atomic", "classify_os_error", "temp_path_for"]
