"""Filesystem utilities for pez.

These helpers raise ``FilesystemError`` with the offending path instead of a
bare ``OSError``.
"""

import shutil
from pathlib import Path

from pez.errors import FilesystemError


def ensure_directory(path: Path) -> Path:
    """Create ``path`` and any missing parents.

    Args:
        path: Directory to create

    Returns:
        The same path
    """
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FilesystemError(f"Cannot create directory {path}: {e}", path) from e
    return path


def copy_file(src: Path, dest: Path) -> Path:
    """Copy a plugin file into the target tree, keeping its mode and mtime.

    Args:
        src: File inside a clone or local plugin directory
        dest: Destination under the target directory

    Returns:
        The destination path
    """
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src, dest)
    except OSError as e:
        raise FilesystemError(f"Cannot copy {src} to {dest}: {e}", dest) from e
    return dest


def remove_directory(path: Path) -> bool:
    """Delete a clone directory tree.

    Returns:
        False when there was nothing to delete
    """
    if not path.exists():
        return False
    try:
        shutil.rmtree(path)
    except OSError as e:
        raise FilesystemError(f"Cannot remove directory {path}: {e}", path) from e
    return True


def remove_file(path: Path) -> bool:
    """Delete one installed file. Dangling symlinks count as present."""
    if not path.exists() and not path.is_symlink():
        return False
    try:
        path.unlink()
    except OSError as e:
        raise FilesystemError(f"Cannot remove {path}: {e}", path) from e
    return True


def prune_empty_parents(path: Path, stop: Path) -> None:
    """Remove empty directories from ``path`` up to, but not including, ``stop``."""
    current = path
    while current != stop and stop in current.parents:
        try:
            current.rmdir()
        except OSError:
            return
        current = current.parent
