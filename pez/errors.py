"""Exception types raised by the pez engine."""

from pathlib import Path


class PezError(Exception):
    """Base class for all pez errors."""


class MalformedTargetError(PezError):
    """A plugin identifier or selector could not be parsed."""

    def __init__(self, message: str, target: str | None = None):
        self.target = target
        super().__init__(message)


class ConfigError(PezError):
    """Error loading or parsing a configuration or lock file."""

    def __init__(self, message: str, path: Path | None = None):
        self.path = path
        super().__init__(message)


class ConfigValidationError(ConfigError):
    """The declared configuration violates the plugin entry rules."""


class GitError(PezError):
    """Error interacting with a Git repository."""

    def __init__(self, message: str, source: str | None = None, ref: str | None = None):
        self.source = source
        self.ref = ref
        super().__init__(message)


class CloneFailedError(GitError):
    """Cloning a repository failed (network, auth or not found)."""


class RefNotFoundError(GitError):
    """A selector did not match any branch or tag, or a checkout failed."""


class DuplicateDestinationError(PezError):
    """A plugin would overwrite a destination already claimed in this run."""

    def __init__(self, message: str, conflicts: list[Path]):
        self.conflicts = conflicts
        super().__init__(message)


class LockfileInconsistencyError(PezError):
    """A clone exists on disk with no lock entry owning it."""

    def __init__(self, message: str, path: Path | None = None):
        self.path = path
        super().__init__(message)


class FilesystemError(PezError):
    """Permission or I/O failure while touching the filesystem."""

    def __init__(self, message: str, path: Path | None = None):
        self.path = path
        super().__init__(message)
