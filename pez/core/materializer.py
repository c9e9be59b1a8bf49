"""Copying plugin assets into the fish configuration tree."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from pez.config.schemas import ASSET_DIRS, AssetDir, PluginFile
from pez.errors import DuplicateDestinationError, FilesystemError
from pez.utils.filesystem import copy_file, ensure_directory, prune_empty_parents, remove_file

logger = logging.getLogger(__name__)

ASSET_EXTENSIONS: dict[AssetDir, str] = {
    "functions": ".fish",
    "completions": ".fish",
    "conf.d": ".fish",
    "themes": ".theme",
}


@dataclass(frozen=True)
class PlannedCopy:
    """One file a plugin would write."""

    source: Path
    record: PluginFile
    destination: Path


class DestinationSet:
    """Destination paths claimed so far in one batch.

    Only touched from the sequential copy phase, so it needs no locking.
    """

    def __init__(self) -> None:
        self._owners: dict[Path, str] = {}

    def __contains__(self, path: object) -> bool:
        return path in self._owners

    def __len__(self) -> int:
        return len(self._owners)

    def owner(self, path: Path) -> str | None:
        return self._owners.get(path)

    def claim(self, path: Path, owner: str) -> None:
        self._owners.setdefault(path, owner)

    def taken_by_other(self, path: Path, owner: str) -> bool:
        current = self._owners.get(path)
        return current is not None and current != owner

    def release(self, paths: list[Path], owner: str) -> None:
        for path in paths:
            if self._owners.get(path) == owner:
                del self._owners[path]


def file_path(target_dir: Path, record: PluginFile) -> Path:
    """Absolute destination of a recorded file."""
    return target_dir / record.dir / record.name


def conf_d_stems(files: list[PluginFile]) -> list[str]:
    """File stems of the ``conf.d`` entries, in record order."""
    return [Path(f.name).stem for f in files if f.dir == "conf.d"]


class FileMaterializer:
    """Copies recognized asset files from a plugin tree into the target tree."""

    def __init__(self, target_dir: Path):
        """Initialize the materializer.

        Args:
            target_dir: Root of the fish configuration tree to copy into
        """
        self.target_dir = target_dir

    def plan(self, plugin_root: Path) -> list[PlannedCopy]:
        """List the files a plugin would copy, in a stable order.

        Only ``.fish`` files under functions, completions and conf.d and
        ``.theme`` files under themes are considered.
        """
        planned: list[PlannedCopy] = []
        for asset_dir in ASSET_DIRS:
            source_dir = plugin_root / asset_dir
            if not source_dir.is_dir():
                continue
            extension = ASSET_EXTENSIONS[asset_dir]
            for source in sorted(source_dir.rglob(f"*{extension}")):
                if not source.is_file():
                    continue
                relative = source.relative_to(source_dir).as_posix()
                record = PluginFile(dir=asset_dir, name=relative)
                planned.append(PlannedCopy(source, record, file_path(self.target_dir, record)))
        return planned

    def materialize(
        self,
        name: str,
        plugin_root: Path,
        claimed: DestinationSet,
        owner: str,
        previous: list[PluginFile] | None = None,
        skip_existing: bool = True,
    ) -> list[PluginFile]:
        """Copy a plugin's assets, all or nothing.

        Every destination is checked before anything is written. A destination
        claimed by another owner, or (with ``skip_existing``) already present on
        disk and not recorded in ``previous``, aborts the whole plugin.

        Args:
            name: Plugin name, used in messages
            plugin_root: Working tree of the plugin
            claimed: Destinations claimed so far in this batch
            owner: Claim owner, the plugin's canonical source
            previous: Files the plugin's existing lock entry recorded
            skip_existing: Treat unowned files already on disk as conflicts

        Returns:
            The copied files, in copy order

        Raises:
            DuplicateDestinationError: If any destination is already taken
            FilesystemError: If copying fails (files written so far are removed)
        """
        previous = previous or []
        owned = {file_path(self.target_dir, f) for f in previous}
        planned = self.plan(plugin_root)

        conflicts = [
            p.destination
            for p in planned
            if claimed.taken_by_other(p.destination, owner)
            or (
                skip_existing
                and p.destination not in owned
                and p.destination not in claimed
                and p.destination.exists()
            )
        ]
        if conflicts:
            holder = claimed.owner(conflicts[0]) or "an unmanaged file"
            raise DuplicateDestinationError(
                f"Skipping {name}: {conflicts[0]} is already provided by {holder}",
                conflicts=conflicts,
            )

        self.remove(previous)
        claimed.release(list(owned), owner)

        written: list[Path] = []
        try:
            for p in planned:
                copy_file(p.source, p.destination)
                written.append(p.destination)
                logger.info("   - %s", p.destination)
        except FilesystemError:
            for path in written:
                remove_file(path)
            raise

        for p in planned:
            claimed.claim(p.destination, owner)

        if not planned:
            logger.warning("%s has no functions, completions, conf.d or themes files", name)
        return [p.record for p in planned]

    def remove(self, files: list[PluginFile]) -> list[Path]:
        """Delete recorded files from the target tree.

        Returns:
            Paths that were actually removed
        """
        removed = []
        for record in files:
            path = file_path(self.target_dir, record)
            if remove_file(path):
                removed.append(path)
                prune_empty_parents(path.parent, self.target_dir / record.dir)
        return removed

    def ensure_target_dirs(self) -> None:
        for asset_dir in ASSET_DIRS:
            ensure_directory(self.target_dir / asset_dir)
