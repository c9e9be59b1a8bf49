"""Configuration file parsing utilities."""

import tomllib
from pathlib import Path
from typing import Any

import tomli_w
from pydantic import ValidationError

from pez.config.schemas import LockFile, PezConfig
from pez.core.target import canonical_source, identity_key
from pez.errors import ConfigError, ConfigValidationError

CONFIG_FILENAME = "pez.toml"
LOCK_FILENAME = "pez-lock.toml"

CONFIG_TEMPLATE = """\
# pez configuration
#
# Declare plugins as an array of tables. Each entry sets exactly one source
# (repo, url or path) and at most one selector (version, branch, tag or commit).
#
# [[plugins]]
# repo = "owner/repo"
# version = "v1"
#
# [[plugins]]
# url = "https://gitlab.com/owner/repo"
# branch = "main"
#
# [[plugins]]
# path = "~/src/my-plugin"
"""


def load_toml(path: Path) -> dict[str, Any]:
    """Load and parse a TOML file.

    Args:
        path: Path to the TOML file

    Returns:
        Parsed TOML as a dictionary

    Raises:
        ConfigError: If the file cannot be read or parsed
    """
    if not path.exists():
        raise ConfigError(f"File not found: {path}", path)

    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}", path) from e
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}", path) from e


def save_toml(path: Path, data: dict[str, Any]) -> None:
    """Save data to a TOML file.

    Args:
        path: Path to write to
        data: Data to serialize

    Raises:
        ConfigError: If the file cannot be written
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            tomli_w.dump(data, f)
    except OSError as e:
        raise ConfigError(f"Cannot write {path}: {e}", path) from e


def load_config(config_dir: Path) -> PezConfig:
    """Load the declared configuration.

    A missing file is an empty configuration.

    Args:
        config_dir: Directory containing pez.toml

    Returns:
        Parsed configuration

    Raises:
        ConfigError: If the file cannot be parsed
        ConfigValidationError: If an entry is invalid or two entries share a source
    """
    config_path = config_dir / CONFIG_FILENAME
    if not config_path.exists():
        return PezConfig()

    data = load_toml(config_path)
    try:
        config = PezConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigValidationError(f"Invalid configuration in {config_path}: {e}", config_path) from e

    seen: dict[str, int] = {}
    for index, spec in enumerate(config.plugins):
        key = identity_key(spec)
        if key in seen:
            first = seen[key]
            raise ConfigValidationError(
                f"Plugins #{first + 1} and #{index + 1} in {config_path} "
                f"both point at {canonical_source(config.plugins[first])}",
                config_path,
            )
        seen[key] = index
    return config


def save_config(config_dir: Path, config: PezConfig) -> None:
    """Save the declared configuration."""
    data = config.model_dump(mode="json", exclude_none=True)
    save_toml(config_dir / CONFIG_FILENAME, data)


def write_config_template(config_dir: Path) -> Path:
    """Write a commented pez.toml template.

    Returns:
        Path to the written file
    """
    config_path = config_dir / CONFIG_FILENAME
    try:
        config_dir.mkdir(parents=True, exist_ok=True)
        config_path.write_text(CONFIG_TEMPLATE, encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot write {config_path}: {e}", config_path) from e
    return config_path


def load_lockfile(config_dir: Path) -> LockFile | None:
    """Load the lockfile if it exists.

    Args:
        config_dir: Directory containing pez-lock.toml

    Returns:
        Parsed lockfile, or None if it does not exist

    Raises:
        ConfigError: If the lockfile is invalid
    """
    lock_path = config_dir / LOCK_FILENAME
    if not lock_path.exists():
        return None

    data = load_toml(lock_path)
    try:
        return LockFile.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid lockfile {lock_path}: {e}", lock_path) from e


def save_lockfile(config_dir: Path, lockfile: LockFile) -> None:
    """Save the lockfile."""
    save_toml(config_dir / LOCK_FILENAME, lockfile.model_dump(mode="json"))
