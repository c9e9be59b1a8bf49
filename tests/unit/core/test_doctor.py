"""Tests for pez.core.doctor module."""

import shutil
from collections.abc import Callable
from pathlib import Path

from pez.backend.memory import InMemoryGitBackend
from pez.config.settings import Settings
from pez.core.doctor import CheckResult, run_checks
from pez.core.reconciler import Reconciler


def by_name(results: list[CheckResult]) -> dict[str, CheckResult]:
    return {r.name: r for r in results}


class TestRunChecks:
    """Tests for run_checks()."""

    def test_fresh_setup_warns(self, settings: Settings):
        """Nothing on disk yet: files and directories are reported missing."""
        results = by_name(run_checks(settings))

        assert list(results) == ["config", "lock_file", "fish_config_dir", "pez_data_dir"]
        assert all(r.status == "warn" for r in results.values())

    def test_healthy_install(
        self,
        settings: Settings,
        backend: InMemoryGitBackend,
        write_config: Callable[[str], Path],
        make_reconciler: Callable[..., Reconciler],
    ):
        """A clean install passes every check."""
        write_config('[[plugins]]\nrepo = "a/b"\n')
        backend.add_repository(
            "https://github.com/a/b", branches={"main": "s"}, trees={"s": {"functions/b.fish": ""}}
        )
        make_reconciler().install()

        results = run_checks(settings)

        assert [r.name for r in results] == [
            "config",
            "lock_file",
            "fish_config_dir",
            "pez_data_dir",
            "repos",
            "target_files",
            "duplicates",
        ]
        assert all(r.ok for r in results)

    def test_missing_clone_and_file(
        self,
        settings: Settings,
        backend: InMemoryGitBackend,
        write_config: Callable[[str], Path],
        make_reconciler: Callable[..., Reconciler],
    ):
        """Missing clones and target files are warnings."""
        write_config('[[plugins]]\nrepo = "a/b"\n')
        backend.add_repository(
            "https://github.com/a/b", branches={"main": "s"}, trees={"s": {"functions/b.fish": ""}}
        )
        make_reconciler().install()
        shutil.rmtree(settings.data_dir / "github.com" / "a" / "b")
        (settings.target_dir / "functions" / "b.fish").unlink()

        results = by_name(run_checks(settings))

        assert results["repos"].status == "warn"
        assert results["target_files"].status == "warn"
        assert "functions/b.fish missing" in results["target_files"].details[0]

    def test_duplicate_claims_are_errors(self, settings: Settings):
        """Two lock entries recording the same file fail the duplicates check."""
        settings.config_dir.mkdir(parents=True)
        entry = (
            '[[plugins]]\nname = "{0}"\nrepo = "o/{0}"\nsource = "https://github.com/o/{0}"\n'
            'commit_sha = "1"\n\n[[plugins.files]]\ndir = "functions"\nname = "same.fish"\n\n'
        )
        settings.lock_path.write_text("version = 1\n\n" + entry.format("x") + entry.format("y"))

        results = by_name(run_checks(settings))

        assert results["duplicates"].status == "error"
        assert "claimed by o/x, o/y" in results["duplicates"].details[0]

    def test_invalid_config_is_error(self, settings: Settings, write_config: Callable[[str], Path]):
        """An unreadable pez.toml is an error, not a crash."""
        write_config("[[plugins]]\nrepo = \n")

        results = by_name(run_checks(settings))

        assert results["config"].status == "error"
