"""Directory and runtime settings resolved from the environment.

Resolution order:

- config dir: ``PEZ_CONFIG_DIR``, ``__fish_config_dir``, ``$XDG_CONFIG_HOME/fish``, ``~/.config/fish``
- data dir: ``PEZ_DATA_DIR``, ``$__fish_user_data_dir/pez``, ``$XDG_DATA_HOME/fish/pez``,
  ``~/.local/share/fish/pez``
- target dir: ``PEZ_TARGET_DIR``, then the config dir chain without ``PEZ_CONFIG_DIR``
- jobs: explicit value, ``PEZ_JOBS``, 4
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from pez.config.parser import CONFIG_FILENAME, LOCK_FILENAME

logger = logging.getLogger(__name__)

DEFAULT_JOBS = 4


@dataclass(frozen=True)
class Settings:
    """Base paths and knobs for one pez invocation."""

    config_dir: Path
    data_dir: Path
    target_dir: Path
    jobs: int = DEFAULT_JOBS
    suppress_emit: bool = False

    @property
    def config_path(self) -> Path:
        return self.config_dir / CONFIG_FILENAME

    @property
    def lock_path(self) -> Path:
        return self.config_dir / LOCK_FILENAME

    @classmethod
    def from_env(
        cls,
        env: Mapping[str, str] | None = None,
        jobs: int | None = None,
        home: Path | None = None,
    ) -> "Settings":
        """Resolve settings once from an environment mapping.

        Args:
            env: Environment to read (defaults to ``os.environ``)
            jobs: Job count given on the command line, overriding ``PEZ_JOBS``
            home: Home directory (defaults to the current user's)

        Returns:
            Resolved settings
        """
        if env is None:
            env = os.environ
        if home is None:
            home = Path(os.path.expanduser("~"))

        fish_config_dir = _fish_config_dir(env, home)
        config_dir = _env_path(env, "PEZ_CONFIG_DIR") or fish_config_dir
        target_dir = _env_path(env, "PEZ_TARGET_DIR") or fish_config_dir
        data_dir = _env_path(env, "PEZ_DATA_DIR") or _fish_data_dir(env, home) / "pez"

        settings = cls(
            config_dir=config_dir,
            data_dir=data_dir,
            target_dir=target_dir,
            jobs=max(1, jobs) if jobs is not None else _env_jobs(env),
            suppress_emit=bool(env.get("PEZ_SUPPRESS_EMIT")),
        )
        logger.debug(
            "Resolved settings: config=%s data=%s target=%s jobs=%d",
            settings.config_dir,
            settings.data_dir,
            settings.target_dir,
            settings.jobs,
        )
        return settings


def _env_path(env: Mapping[str, str], name: str) -> Path | None:
    value = env.get(name)
    return Path(value) if value else None


def _fish_config_dir(env: Mapping[str, str], home: Path) -> Path:
    fish_dir = _env_path(env, "__fish_config_dir")
    if fish_dir:
        return fish_dir
    xdg = _env_path(env, "XDG_CONFIG_HOME")
    if xdg:
        return xdg / "fish"
    return home / ".config" / "fish"


def _fish_data_dir(env: Mapping[str, str], home: Path) -> Path:
    fish_dir = _env_path(env, "__fish_user_data_dir")
    if fish_dir:
        return fish_dir
    xdg = _env_path(env, "XDG_DATA_HOME")
    if xdg:
        return xdg / "fish"
    return home / ".local" / "share" / "fish"


def _env_jobs(env: Mapping[str, str]) -> int:
    value = env.get("PEZ_JOBS")
    if not value:
        return DEFAULT_JOBS
    try:
        return max(1, int(value))
    except ValueError:
        logger.warning("Ignoring invalid PEZ_JOBS value: %s", value)
        return DEFAULT_JOBS
