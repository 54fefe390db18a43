"""Build and run the external call graph analyzer.

The analyzer is a separate program (bundled Go sources under
``tools/golang``). It is compiled into a content-addressed artifact under the
build cache, then executed with the file set as positional arguments. Its
stdout must be a single call graph JSON document.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
import uuid
import weakref
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from .cancellation import CancellationToken
from .config_manager import AnalyzerSettings
from .errors import AnalysisCancelled, BuildError, ExecutionError, NoFilesFound
from .models import CallGraph, SourceFileSet
from .schemas import parse_call_graph

logger = logging.getLogger(__name__)

# Files whose content decides whether the artifact must be rebuilt
SOURCE_PATTERNS = ("*.go", "go.mod", "go.sum")
ARTIFACT_PREFIX = "analyzer-"

# One lock per analyzer source dir, per event loop
_BUILD_LOCKS: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Dict[str, asyncio.Lock]]" = (
    weakref.WeakKeyDictionary()
)


def _build_lock(source_dir: Path) -> asyncio.Lock:
    loop = asyncio.get_running_loop()
    locks = _BUILD_LOCKS.setdefault(loop, {})
    key = os.path.realpath(source_dir)
    if key not in locks:
        locks[key] = asyncio.Lock()
    return locks[key]


@dataclass
class ProcessResult:
    returncode: int
    stdout: str
    stderr: str


def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass


async def run_process(
    command: Sequence[str],
    *,
    cwd: Optional[Path] = None,
    timeout: Optional[float] = None,
    token: Optional[CancellationToken] = None,
) -> ProcessResult:
    """Run *command* without a shell and capture its output.

    The child is killed when *timeout* expires, when *token* is cancelled, or
    when the awaiting task itself is cancelled.

    Raises:
        OSError: the program could not be started.
        asyncio.TimeoutError: *timeout* expired.
        AnalysisCancelled: *token* was cancelled.
    """
    logger.debug("Running %s (cwd=%s)", " ".join(command), cwd)
    proc = await asyncio.create_subprocess_exec(
        *command,
        cwd=str(cwd) if cwd else None,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    communicate = asyncio.ensure_future(proc.communicate())
    waiters = {communicate}
    cancel_wait = None
    if token is not None:
        cancel_wait = asyncio.ensure_future(token.wait())
        waiters.add(cancel_wait)

    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        _kill(proc)
        await asyncio.shield(communicate)
        raise
    finally:
        if cancel_wait is not None:
            cancel_wait.cancel()

    if communicate not in done:
        _kill(proc)
        await communicate
        if token is not None and token.cancelled:
            raise AnalysisCancelled(f"Analyzer {token.reason}")
        raise asyncio.TimeoutError()

    stdout, stderr = communicate.result()
    return ProcessResult(
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


def _source_files(source_dir: Path) -> List[Path]:
    found = set()
    for pattern in SOURCE_PATTERNS:
        found.update(p for p in source_dir.rglob(pattern) if p.is_file())
    return sorted(found)


def source_digest(source_dir: Path, build_command: Sequence[str]) -> str:
    """Digest of the analyzer sources and the command that builds them."""
    files = _source_files(source_dir)
    if not files:
        raise BuildError(f"No analyzer sources found in '{source_dir}'")
    h = hashlib.sha256()
    h.update("\0".join(build_command).encode("utf-8"))
    for path in files:
        h.update(b"\0" + str(path.relative_to(source_dir)).encode("utf-8") + b"\0")
        h.update(path.read_bytes())
    return h.hexdigest()


class AnalyzerRunner:
    """Builds the analyzer when its sources change and runs it on file sets."""

    def __init__(self, settings: AnalyzerSettings) -> None:
        self.settings = settings
        self.source_dir = Path(settings.source_dir)
        self.cache_dir = Path(settings.cache_dir)

    def artifact_path(self, digest: str) -> Path:
        return self.cache_dir / f"{ARTIFACT_PREFIX}{digest[:16]}"

    async def ensure_built(self, token: Optional[CancellationToken] = None) -> Path:
        """Return a current analyzer artifact, building it if needed.

        Builds for the same source directory are serialized; a caller that
        waited on another caller's build reuses its artifact.

        Raises:
            BuildError: sources missing, toolchain missing, build failed or
                timed out.
        """
        try:
            digest = source_digest(self.source_dir, self.settings.build_command)
        except OSError as exc:
            raise BuildError(f"Cannot read analyzer sources in '{self.source_dir}': {exc}") from exc

        artifact = self.artifact_path(digest)
        async with _build_lock(self.source_dir):
            if artifact.is_file() and os.access(artifact, os.X_OK):
                logger.debug("Analyzer artifact is current: %s", artifact)
                return artifact
            if token is not None:
                token.raise_if_cancelled()
            await self._build(artifact, token)
            self._prune_stale(artifact)
        return artifact

    async def _build(self, artifact: Path, token: Optional[CancellationToken]) -> None:
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise BuildError(f"Cannot create build cache '{self.cache_dir}': {exc}") from exc

        partial = self.cache_dir / f".{artifact.name}.{os.getpid()}.{uuid.uuid4().hex[:8]}.partial"
        command = [part.replace("{output}", str(partial)) for part in self.settings.build_command]
        logger.info("Building analyzer from %s", self.source_dir)

        try:
            result = await run_process(
                command,
                cwd=self.source_dir,
                timeout=self.settings.build_timeout,
                token=token,
            )
        except asyncio.TimeoutError as exc:
            partial.unlink(missing_ok=True)
            raise BuildError(f"Analyzer build timed out after {self.settings.build_timeout:g}s") from exc
        except FileNotFoundError as exc:
            raise BuildError(f"Build tool not found: {command[0]}") from exc
        except OSError as exc:
            raise BuildError(f"Could not start analyzer build: {exc}") from exc
        except AnalysisCancelled:
            partial.unlink(missing_ok=True)
            raise

        if result.returncode != 0:
            partial.unlink(missing_ok=True)
            raise BuildError(
                f"Analyzer build failed with status {result.returncode}",
                output=result.stderr or result.stdout,
            )
        if not partial.is_file():
            raise BuildError("Analyzer build finished without producing an artifact", output=result.stderr)

        try:
            os.replace(partial, artifact)
        except OSError as exc:
            partial.unlink(missing_ok=True)
            raise BuildError(f"Cannot install analyzer artifact '{artifact}': {exc}") from exc
        logger.info("Analyzer built: %s", artifact)

    def _prune_stale(self, current: Path) -> None:
        for old in self.cache_dir.glob(f"{ARTIFACT_PREFIX}*"):
            if old != current:
                try:
                    old.unlink()
                except OSError as exc:
                    logger.debug("Could not remove stale artifact %s: %s", old, exc)

    async def execute(
        self,
        artifact: Path,
        files: SourceFileSet,
        token: Optional[CancellationToken] = None,
    ) -> str:
        """Run the analyzer on *files* and return its stdout.

        Raises:
            ExecutionError: the analyzer could not start, exited nonzero,
                timed out, or was cancelled.
        """
        command = [str(artifact), *files]
        try:
            result = await run_process(command, timeout=self.settings.timeout, token=token)
        except asyncio.TimeoutError as exc:
            raise ExecutionError(f"Analyzer timed out after {self.settings.timeout:g}s") from exc
        except OSError as exc:
            raise ExecutionError(f"Could not run analyzer '{artifact}': {exc}") from exc

        if result.returncode != 0:
            raise ExecutionError(f"Analyzer exited with status {result.returncode}", output=result.stderr)
        if result.stderr.strip():
            logger.debug("Analyzer stderr: %s", result.stderr.strip())
        return result.stdout

    async def analyze(
        self,
        files: Iterable[str],
        token: Optional[CancellationToken] = None,
    ) -> CallGraph:
        """Build if needed, execute on *files* and parse the result.

        Raises:
            NoFilesFound: *files* is empty; nothing is built or run.
            BuildError, ExecutionError, ParseError: see the individual steps.
        """
        file_set = tuple(files)
        if not file_set:
            raise NoFilesFound("No source files to analyze.")
        token = token or CancellationToken()

        token.raise_if_cancelled()
        artifact = await self.ensure_built(token)
        token.raise_if_cancelled()
        stdout = await self.execute(artifact, file_set, token)
        graph = parse_call_graph(stdout)
        logger.info("Analyzed %d files: %d functions, %d calls", len(file_set), len(graph.nodes), len(graph.edges))
        return graph
