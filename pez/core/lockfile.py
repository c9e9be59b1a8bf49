"""Lock file management for pez."""

from pathlib import Path

from pez.config.parser import load_lockfile, save_lockfile
from pez.config.schemas import LockedPlugin, LockFile, PluginFile


class LockFileManager:
    """Manages pez-lock.toml, the record of what is actually installed.

    Entries are keyed by canonical source and keep their original order.
    """

    def __init__(self, config_dir: Path):
        """Initialize the lock file manager.

        Args:
            config_dir: Directory holding pez-lock.toml
        """
        self._config_dir = config_dir
        self._lockfile: LockFile | None = None
        self._modified = False
        self._exists = False

    def load(self) -> LockFile:
        """Load the lock file from disk.

        Starts from an empty lock file if one doesn't exist.

        Returns:
            The loaded or new lock file
        """
        loaded = load_lockfile(self._config_dir)
        self._exists = loaded is not None
        self._lockfile = loaded if loaded is not None else LockFile()
        self._modified = False
        return self._lockfile

    def save(self) -> bool:
        """Save the lock file to disk if modified.

        Returns:
            True if the file was written
        """
        if self._lockfile is not None and self._modified:
            save_lockfile(self._config_dir, self._lockfile)
            self._modified = False
            self._exists = True
            return True
        return False

    @property
    def lockfile(self) -> LockFile:
        """Get the current lock file, loading if necessary."""
        if self._lockfile is None:
            self.load()
        assert self._lockfile is not None
        return self._lockfile

    @property
    def exists(self) -> bool:
        """Whether the lock file was present on disk when loaded."""
        return self._exists

    @property
    def entries(self) -> list[LockedPlugin]:
        return self.lockfile.plugins

    def get_locked_plugin(self, source: str) -> LockedPlugin | None:
        """Get the lock entry for a source.

        Args:
            source: Canonical source

        Returns:
            LockedPlugin entry, or None if not locked
        """
        for plugin in self.lockfile.plugins:
            if plugin.source == source:
                return plugin
        return None

    def lock_plugin(
        self,
        name: str,
        repo: str,
        source: str,
        commit_sha: str,
        files: list[PluginFile],
    ) -> LockedPlugin:
        """Insert or replace the entry for a source.

        A replaced entry keeps its position.

        Returns:
            The new entry
        """
        entry = LockedPlugin(
            name=name,
            repo=repo,
            source=source,
            commit_sha=commit_sha,
            files=list(files),
        )
        plugins = self.lockfile.plugins
        for index, existing in enumerate(plugins):
            if existing.source == source:
                if existing != entry:
                    plugins[index] = entry
                    self._modified = True
                return entry
        plugins.append(entry)
        self._modified = True
        return entry

    def unlock_plugin(self, source: str) -> bool:
        """Remove the entry for a source.

        Returns:
            True if an entry was removed, False if it wasn't locked
        """
        plugins = self.lockfile.plugins
        for index, existing in enumerate(plugins):
            if existing.source == source:
                del plugins[index]
                self._modified = True
                return True
        return False

    def is_locked(self, source: str) -> bool:
        return self.get_locked_plugin(source) is not None

    def list_sources(self) -> list[str]:
        """List all locked sources in file order."""
        return [plugin.source for plugin in self.lockfile.plugins]

    def find(self, identifier: str) -> LockedPlugin | None:
        """Find an entry by source, display repo id, or name (in that order)."""
        for key in ("source", "repo", "name"):
            for plugin in self.lockfile.plugins:
                if getattr(plugin, key) == identifier:
                    return plugin
        return None
