from __future__ import annotations

import os
from pathlib import Path

from platformdirs import user_config_dir as _uc

APP_NAME = "verconf"

CONFIG_FILENAME = "config.yaml"
LOCK_SUFFIX = ".lock"
CACHE_DIRNAME = "cache"
BACKUP_DIR_PREFIX = "backup-v1-"

# ---------------------------------------------------------------------------
# Base directory
# ---------------------------------------------------------------------------

def default_base_dir(app_name: str = APP_NAME) -> Path:
    """Return the directory holding the config document.

    ``VERCONF_HOME`` overrides the platform user config directory.
    """
    env = os.getenv("VERCONF_HOME")
    if env:
        return Path(env).expanduser().resolve()
    return Path(_uc(appname=app_name)).resolve()


def expand_path(raw: str | os.PathLike[str]) -> Path:
    """Expand ``~`` and environment variables in a stored path."""
    return Path(os.path.expandvars(os.path.expanduser(os.fspath(raw))))
