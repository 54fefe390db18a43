"""Pytest configuration and fixtures for call graph CLI tests."""

import shutil
import sys
import tempfile
from pathlib import Path
from typing import Generator, List, Optional, Tuple

import pytest

from callgraph_cli.config_manager import (
    AnalyzerSettings,
    EditorSettings,
    ServerSettings,
    Settings,
)
from callgraph_cli.errors import NavigationError

FIXTURES = Path(__file__).parent / "fixtures"
FAKE_BUILD = FIXTURES / "fake_build.py"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture(autouse=True)
def isolated_config(temp_dir: Path, monkeypatch) -> Path:
    """Point config.toml at a temp location so tests never touch ~/.callgraph."""
    config_file = temp_dir / "home" / "config.toml"
    monkeypatch.setattr("callgraph_cli.config_manager.CONFIG_FILE", config_file)
    for name in ("FAKE_BUILD_LOG", "FAKE_BUILD_DELAY", "FAKE_BUILD_FAIL", "FAKE_ANALYZER_MODE", "FAKE_ANALYZER_ARGS"):
        monkeypatch.delenv(name, raising=False)
    return config_file


@pytest.fixture
def sample_project_path() -> Path:
    """Get path to the sample Go project."""
    return FIXTURES / "go_project"


@pytest.fixture
def analyzer_source(temp_dir: Path) -> Path:
    """A writable copy of the stub analyzer sources."""
    target = temp_dir / "analyzer_src"
    shutil.copytree(FIXTURES / "analyzer_stub", target)
    return target


@pytest.fixture
def fake_build_command() -> List[str]:
    """Build command that installs the Python fake analyzer instead of compiling Go."""
    return [sys.executable, str(FAKE_BUILD), "{output}"]


@pytest.fixture
def analyzer_settings(temp_dir: Path, analyzer_source: Path, fake_build_command) -> AnalyzerSettings:
    return AnalyzerSettings(
        source_dir=analyzer_source,
        build_command=fake_build_command,
        cache_dir=temp_dir / "bin",
        timeout=20.0,
        build_timeout=20.0,
    )


@pytest.fixture
def settings(analyzer_settings: AnalyzerSettings) -> Settings:
    return Settings(
        analyzer=analyzer_settings,
        editor=EditorSettings(),
        server=ServerSettings(open_browser=False, idle_grace=0.05),
    )


@pytest.fixture
def build_log(temp_dir: Path, monkeypatch) -> Path:
    """File the fake build appends one line to per build."""
    log = temp_dir / "build.log"
    monkeypatch.setenv("FAKE_BUILD_LOG", str(log))
    return log


def build_count(log: Path) -> int:
    if not log.exists():
        return 0
    return len(log.read_text(encoding="utf-8").splitlines())


@pytest.fixture
def go_tree(temp_dir: Path) -> Path:
    """Small workspace: a.go, b.go, sub/c.go and a non-Go file."""
    root = temp_dir / "workspace"
    (root / "sub").mkdir(parents=True)
    (root / "a.go").write_text("package main\n\nfunc main() { helper() }\n", encoding="utf-8")
    (root / "b.go").write_text("package main\n\nfunc helper() {}\n", encoding="utf-8")
    (root / "sub" / "c.go").write_text("package sub\n\nfunc C() {}\n", encoding="utf-8")
    (root / "readme.md").write_text("# workspace\n", encoding="utf-8")
    return root


class RecordingEditor:
    """Editor capability that records what it was asked to open."""

    def __init__(self, line_base: int = 1, fail: Optional[str] = None) -> None:
        self.line_base = line_base
        self.fail = fail
        self.opened: List[Tuple[Path, int]] = []
        self.closed = False

    async def open_file(self, path: Path, line: int) -> None:
        if self.fail:
            raise NavigationError(self.fail)
        self.opened.append((path, line))

    def close(self) -> None:
        self.closed = True


class RecordingReporter:
    def __init__(self) -> None:
        self.messages: List[Tuple[str, str]] = []

    def info(self, message: str) -> None:
        self.messages.append(("info", message))

    def warning(self, message: str) -> None:
        self.messages.append(("warning", message))

    def error(self, message: str) -> None:
        self.messages.append(("error", message))

    def of(self, level: str) -> List[str]:
        return [text for kind, text in self.messages if kind == level]


class FakeHost:
    """Visualization host that records sessions instead of serving them."""

    def __init__(self) -> None:
        self.sessions = []

    async def serve(self, session, announce=None) -> None:
        self.sessions.append(session)
        if announce is not None:
            announce("http://127.0.0.1:0")
        session.close()


@pytest.fixture
def recording_editor() -> RecordingEditor:
    return RecordingEditor()


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def fake_host() -> FakeHost:
    return FakeHost()
