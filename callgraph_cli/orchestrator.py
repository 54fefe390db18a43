"""End-to-end analysis workflow: scope → files → analyzer → visualization."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Protocol

from .analyzer import AnalyzerRunner
from .cancellation import CancellationToken
from .config import SCOPE_ACTIVE_FILE, SCOPE_ALL_FILES
from .config_manager import Settings
from .discovery import FileDiscovery
from .editor import EditorCapability
from .errors import CallGraphError, InvalidScope, NoFilesFound, SessionError
from .models import ActiveFile, AllFiles, AnalysisScope, CallGraph, SourceFileSet, make_file_set
from .visualization import VisualizationHost, VisualizationSession

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    IDLE = "idle"
    SCOPE_SELECTED = "scope_selected"
    FILES_RESOLVED = "files_resolved"
    ANALYZING = "analyzing"
    VISUALIZING = "visualizing"
    DONE = "done"
    ERROR = "error"


class Reporter(Protocol):
    """User-visible message sink."""

    def info(self, message: str) -> None: ...

    def warning(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


@dataclass
class AnalysisContext:
    """Everything one run needs, passed explicitly instead of module state."""

    settings: Settings
    workspace_root: Path
    runner: AnalyzerRunner
    editor: EditorCapability
    reporter: Reporter
    host: Optional[VisualizationHost] = None
    active_file: Optional[Path] = None


@dataclass
class RunOutcome:
    state: RunState
    graph: Optional[CallGraph] = None
    files: SourceFileSet = ()
    error: Optional[CallGraphError] = None

    @property
    def ok(self) -> bool:
        return self.state == RunState.DONE


@dataclass
class CallGraphOrchestrator:
    context: AnalysisContext
    state: RunState = RunState.IDLE
    history: List[RunState] = field(default_factory=list)
    _run_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def _enter(self, state: RunState) -> None:
        logger.debug("Run state: %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def select_scope(self, choice: Optional[str]) -> Optional[AnalysisScope]:
        """Map a prompt choice to a scope; ``None`` means nothing was picked."""
        if choice is None:
            return None
        if choice == SCOPE_ACTIVE_FILE:
            if self.context.active_file is None:
                raise InvalidScope("No active file to analyze. Pass one with --file.")
            return ActiveFile(Path(self.context.active_file))
        if choice == SCOPE_ALL_FILES:
            return AllFiles(Path(self.context.workspace_root))
        raise InvalidScope(f"Invalid option selected: {choice!r}")

    def resolve_files(self, scope: AnalysisScope) -> SourceFileSet:
        if isinstance(scope, ActiveFile):
            return make_file_set([scope.path])
        if isinstance(scope, AllFiles):
            settings = self.context.settings
            discovery = FileDiscovery(extension=settings.extension, exclude=settings.exclude)
            return discovery.discover(scope.root)
        raise InvalidScope(f"Unsupported scope: {scope!r}")

    async def analyze(self, choice: Optional[str], token: Optional[CancellationToken] = None) -> RunOutcome:
        """Run up to the parsed graph, without opening a visualization."""
        return await self._execute(choice, token, visualize=False)

    async def run(self, choice: Optional[str], token: Optional[CancellationToken] = None) -> RunOutcome:
        """Drive one full run. Failures are reported, never raised."""
        return await self._execute(choice, token, visualize=True)

    async def _execute(
        self,
        choice: Optional[str],
        token: Optional[CancellationToken],
        visualize: bool,
    ) -> RunOutcome:
        async with self._run_lock:
            self.history = []
            try:
                return await self._drive(choice, token or CancellationToken(), visualize)
            finally:
                self._enter(RunState.IDLE)

    async def _drive(self, choice: Optional[str], token: CancellationToken, visualize: bool) -> RunOutcome:
        files: SourceFileSet = ()
        try:
            scope = self.select_scope(choice)
            if scope is None:
                logger.debug("No scope selected")
                return RunOutcome(RunState.IDLE)
            self._enter(RunState.SCOPE_SELECTED)

            files = self.resolve_files(scope)
            self._enter(RunState.FILES_RESOLVED)
            if not files:
                ext = self.context.settings.extension
                raise NoFilesFound(f"No {ext} files found in '{self.context.workspace_root}'.")

            self._enter(RunState.ANALYZING)
            graph = await self.context.runner.analyze(files, token)

            if not visualize:
                self._enter(RunState.DONE)
                return RunOutcome(RunState.DONE, graph=graph, files=files)

            self._enter(RunState.VISUALIZING)
            await self._visualize(graph, scope)
        except CallGraphError as exc:
            return self._fail(exc, files)
        except Exception as exc:
            logger.exception("Unexpected failure during analysis")
            return self._fail(CallGraphError(f"Unexpected error: {exc}"), files)

        self._enter(RunState.DONE)
        return RunOutcome(RunState.DONE, graph=graph, files=files)

    async def _visualize(self, graph: CallGraph, scope: AnalysisScope) -> None:
        host = self.context.host
        if host is None:
            raise SessionError("No visualization host configured.")
        title = "Go Call Graph"
        if isinstance(scope, ActiveFile):
            title = f"Go Call Graph: {scope.path.name}"
        try:
            session = VisualizationSession(
                graph,
                base_path=self.context.workspace_root,
                editor=self.context.editor,
                idle_grace=self.context.settings.server.idle_grace,
                title=title,
            )
        except OSError as exc:
            raise SessionError(f"Could not load the graph page: {exc}") from exc

        reporter = self.context.reporter
        reporter.info(f"{len(graph.nodes)} functions, {len(graph.edges)} calls")
        await host.serve(session, announce=lambda url: reporter.info(f"Call graph at {url}"))

    def _fail(self, exc: CallGraphError, files: SourceFileSet) -> RunOutcome:
        reporter = self.context.reporter
        if exc.is_warning:
            reporter.warning(exc.user_message())
        else:
            self._enter(RunState.ERROR)
            reporter.error(f"Analysis failed: {exc.user_message()}")
        return RunOutcome(self.state, files=files, error=exc)
