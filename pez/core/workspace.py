"""Workspace model: settings, declared configuration and lockfile together."""

from pathlib import Path

from pez.config.parser import load_config, save_config
from pez.config.schemas import LockedPlugin, PezConfig, PluginSpec
from pez.config.settings import Settings
from pez.core.lockfile import LockFileManager
from pez.core.target import InstallTarget, canonical_source, identity_from_url, identity_key


class Workspace:
    """The state one pez invocation works against.

    Holds the declared configuration (pez.toml) and the lockfile manager for
    the directories in ``settings``.
    """

    def __init__(self, settings: Settings, config: PezConfig, lock: LockFileManager):
        """Initialize a Workspace.

        Args:
            settings: Resolved directories and options
            config: Parsed declared configuration
            lock: Lock file manager
        """
        self._settings = settings
        self._config = config
        self._lock = lock
        self._config_modified = False

    @classmethod
    def load(cls, settings: Settings) -> "Workspace":
        """Load configuration and lockfile from the configured directories.

        Raises:
            ConfigError: If either file cannot be parsed or validated
        """
        config = load_config(settings.config_dir)
        lock = LockFileManager(settings.config_dir)
        lock.load()
        return cls(settings, config, lock)

    def save(self) -> None:
        """Write the lockfile and configuration if they changed."""
        self._lock.save()
        if self._config_modified:
            save_config(self._settings.config_dir, self._config)
            self._config_modified = False

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def config(self) -> PezConfig:
        return self._config

    @property
    def lock(self) -> LockFileManager:
        return self._lock

    @property
    def plugins(self) -> list[PluginSpec]:
        """Get the declared plugin specifications."""
        return self._config.plugins

    def declared_targets(self) -> list[InstallTarget]:
        return [InstallTarget(spec, "config") for spec in self._config.plugins]

    def declared_sources(self) -> list[str]:
        return [canonical_source(spec) for spec in self._config.plugins]

    def get_plugin_spec(self, source: str) -> PluginSpec | None:
        """Get the declared spec for a canonical source.

        Returns:
            PluginSpec or None if not declared
        """
        for spec in self._config.plugins:
            if canonical_source(spec) == source:
                return spec
        return None

    def add_plugin(self, spec: PluginSpec) -> bool:
        """Declare a plugin unless its repository is already declared.

        Returns:
            True if the entry was added
        """
        key = identity_key(spec)
        if any(identity_key(existing) == key for existing in self._config.plugins):
            return False
        self._config.plugins.append(spec)
        self._config_modified = True
        return True

    def remove_plugin(self, source: str) -> bool:
        """Remove the declared spec for a source.

        Returns:
            True if the plugin was removed, False if it wasn't declared
        """
        for index, spec in enumerate(self._config.plugins):
            if canonical_source(spec) == source:
                del self._config.plugins[index]
                self._config_modified = True
                return True
        return False

    def clone_dir_for(self, entry: LockedPlugin) -> Path | None:
        """Clone directory of a lock entry, or None for local sources."""
        if entry.commit_sha == "local" or entry.source.startswith("/"):
            return None
        return identity_from_url(entry.source).clone_dir(self._settings.data_dir)

    def __repr__(self) -> str:
        return f"Workspace(config_dir={self._settings.config_dir!r})"
