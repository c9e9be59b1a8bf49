"""Health checks over configuration, lockfile and installed files."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from pez.config.parser import load_config, load_lockfile
from pez.config.schemas import LockFile, PezConfig
from pez.config.settings import Settings
from pez.core.lockfile import LockFileManager
from pez.core.materializer import file_path
from pez.core.reconciler import compute_diff
from pez.core.workspace import Workspace
from pez.errors import ConfigError

logger = logging.getLogger(__name__)

CheckStatus = Literal["ok", "warn", "error"]


@dataclass
class CheckResult:
    """Outcome of one doctor check."""

    name: str
    status: CheckStatus
    details: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == "ok"


def run_checks(settings: Settings) -> list[CheckResult]:
    """Run every check and return them in a fixed order.

    Checks: config, lock_file, fish_config_dir, pez_data_dir, repos,
    target_files and duplicates. The last three need a readable lockfile.

    Args:
        settings: Resolved directories

    Returns:
        One result per check
    """
    results: list[CheckResult] = []

    config: PezConfig | None = None
    try:
        config = load_config(settings.config_dir)
        if settings.config_path.exists():
            results.append(
                CheckResult(
                    "config", "ok", [f"{settings.config_path} ({len(config.plugins)} plugin(s))"]
                )
            )
        else:
            results.append(CheckResult("config", "warn", [f"{settings.config_path} not found"]))
    except ConfigError as e:
        results.append(CheckResult("config", "error", [str(e)]))

    lockfile: LockFile | None = None
    try:
        lockfile = load_lockfile(settings.config_dir)
        if lockfile is None:
            results.append(CheckResult("lock_file", "warn", [f"{settings.lock_path} not found"]))
        else:
            results.append(
                CheckResult(
                    "lock_file", "ok", [f"{settings.lock_path} ({len(lockfile.plugins)} entries)"]
                )
            )
    except ConfigError as e:
        results.append(CheckResult("lock_file", "error", [str(e)]))

    results.append(_check_dir("fish_config_dir", settings.target_dir))
    results.append(_check_dir("pez_data_dir", settings.data_dir))

    if lockfile is None:
        return results

    lock = LockFileManager(settings.config_dir)
    lock.load()
    workspace = Workspace(settings, config or PezConfig(), lock)
    diff = compute_diff(workspace)

    repos = CheckResult("repos", "ok")
    for entry in lockfile.plugins:
        if entry.source in diff.missing_clones:
            repos.status = "warn"
            repos.details.append(f"{entry.repo}: clone missing at {workspace.clone_dir_for(entry)}")
    results.append(repos)

    target_files = CheckResult("target_files", "ok")
    for entry in lockfile.plugins:
        for path in diff.missing_files.get(entry.source, []):
            target_files.status = "warn"
            target_files.details.append(f"{entry.repo}: {path} missing")
    results.append(target_files)

    owners: dict[Path, list[str]] = {}
    for entry in lockfile.plugins:
        for record in entry.files:
            owners.setdefault(file_path(settings.target_dir, record), []).append(entry.repo)
    duplicates = CheckResult("duplicates", "ok")
    for path, repos_for_path in owners.items():
        if len(repos_for_path) > 1:
            duplicates.status = "error"
            duplicates.details.append(f"{path} claimed by {', '.join(repos_for_path)}")
    results.append(duplicates)

    for result in results:
        logger.debug("Check %s: %s", result.name, result.status)
    return results


def _check_dir(name: str, path: Path) -> CheckResult:
    if path.is_dir():
        return CheckResult(name, "ok", [str(path)])
    return CheckResult(name, "warn", [f"{path} does not exist"])
