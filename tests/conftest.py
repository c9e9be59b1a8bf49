"""Shared fixtures for pez tests."""

import shutil
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from pez.backend.memory import InMemoryGitBackend
from pez.config.settings import Settings
from pez.core.hooks import HookEmitter
from pez.core.reconciler import Reconciler
from pez.core.workspace import Workspace


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory."""
    path = Path(tempfile.mkdtemp(prefix="pez_test_"))
    yield path
    if path.exists():
        shutil.rmtree(path)


@pytest.fixture
def settings(temp_dir: Path) -> Settings:
    """Settings pointing into the temporary directory, with hook emission suppressed."""
    return Settings(
        config_dir=temp_dir / "config",
        data_dir=temp_dir / "data",
        target_dir=temp_dir / "fish",
        jobs=4,
        suppress_emit=True,
    )


@pytest.fixture
def backend() -> InMemoryGitBackend:
    """An empty in-memory Git backend."""
    return InMemoryGitBackend()


@pytest.fixture
def write_config(settings: Settings) -> Callable[[str], Path]:
    """Write pez.toml contents into the configuration directory."""

    def _write(text: str) -> Path:
        settings.config_dir.mkdir(parents=True, exist_ok=True)
        settings.config_path.write_text(text, encoding="utf-8")
        return settings.config_path

    return _write


@pytest.fixture
def make_reconciler(
    settings: Settings, backend: InMemoryGitBackend
) -> Callable[..., Reconciler]:
    """Build a reconciler over a freshly loaded workspace, as each CLI run does."""

    def _make(force: bool = False, jobs: int | None = None) -> Reconciler:
        workspace = Workspace.load(settings)
        emitter = HookEmitter(suppress=True)
        return Reconciler(workspace, backend, emitter=emitter, force=force, jobs=jobs)

    return _make


@pytest.fixture
def make_local_plugin() -> Callable[..., Path]:
    """Create a plugin directory on disk with the given relative files."""

    def _make(root: Path, *names: str) -> Path:
        for name in names:
            path = root / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(f"# {name}\n", encoding="utf-8")
        return root

    return _make
