"""Open source locations in the user's editor.

Lines in :class:`~callgraph_cli.models.NavigationRequest` are 1-based. Each
editor capability declares the convention it expects through ``line_base``,
and :func:`to_editor_line` is the single place where the conversion happens:
a 0-based editor receives ``line - 1``, a 1-based editor receives ``line``.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path
from string import Formatter
from typing import Dict, List, Optional, Protocol, Sequence, Set, Tuple

from .config_manager import EditorSettings
from .errors import NavigationError

logger = logging.getLogger(__name__)

PLACEHOLDERS = ("file", "line", "column")

# name -> (command template, line base); launchers only, the server runs
# in the background so terminal editors need a custom command that opens
# their own window
EDITOR_PRESETS: Dict[str, Tuple[List[str], int]] = {
    "code": (["code", "--goto", "{file}:{line}:{column}"], 1),
    "codium": (["codium", "--goto", "{file}:{line}:{column}"], 1),
    "subl": (["subl", "{file}:{line}:{column}"], 1),
    "gvim": (["gvim", "--remote-silent", "+{line}", "{file}"], 1),
    "emacsclient": (["emacsclient", "-n", "+{line}:{column}", "{file}"], 1),
    "idea": (["idea", "--line", "{line}", "{file}"], 1),
    "xdg-open": (["xdg-open", "{file}"], 1),
}


def to_editor_line(line: int, line_base: int) -> int:
    """Translate a 1-based domain line into the editor's convention."""
    if line < 1:
        raise ValueError(f"line must be >= 1, got {line}")
    if line_base not in (0, 1):
        raise ValueError(f"line_base must be 0 or 1, got {line_base}")
    return line - 1 if line_base == 0 else line


class EditorCapability(Protocol):
    """Something that can show a file with the cursor on a line."""

    line_base: int

    async def open_file(self, path: Path, line: int) -> None:
        """Open *path* at *line*, already expressed in ``line_base``."""
        ...

    def close(self) -> None:
        """Stop tracking editors launched for the session."""
        ...


def check_template(command: Sequence[str]) -> None:
    """Reject templates with placeholders other than ``{file}``, ``{line}``, ``{column}``.

    Literal braces are written doubled, e.g. ``${{HOME}}``.
    """
    for part in command:
        try:
            fields = [name for _, name, _, _ in Formatter().parse(part) if name is not None]
        except ValueError as exc:
            raise ValueError(f"Bad editor command part {part!r}: {exc}") from exc
        unknown = [name for name in fields if name not in PLACEHOLDERS]
        if unknown:
            raise ValueError(
                f"Unknown placeholder {{{unknown[0]}}} in editor command part {part!r}; "
                "use {file}, {line}, {column} and double literal braces"
            )


class CommandEditor:
    """Launch an editor through a command template.

    Placeholders ``{file}``, ``{line}`` and ``{column}`` are substituted per
    request. The launcher's exit is awaited, which is the file-open
    confirmation for editors that hand off to a running instance. A launcher
    still running after ``wait_timeout`` counts as opened; it is reaped in the
    background until :meth:`close`.
    """

    def __init__(self, command: Sequence[str], line_base: int = 1, wait_timeout: float = 10.0) -> None:
        if not command:
            raise ValueError("editor command must not be empty")
        check_template(command)
        self.command = list(command)
        self.line_base = line_base
        self.wait_timeout = wait_timeout
        self.background: Set["asyncio.Future[Tuple[bytes, bytes]]"] = set()

    @classmethod
    def from_preset(cls, name: str) -> "CommandEditor":
        try:
            command, base = EDITOR_PRESETS[name]
        except KeyError:
            raise ValueError(f"Unknown editor preset '{name}'. Known: {', '.join(sorted(EDITOR_PRESETS))}") from None
        return cls(command, line_base=base)

    def render(self, path: Path, line: int) -> List[str]:
        column = 1 if self.line_base == 1 else 0
        values = {"file": str(path), "line": str(line), "column": str(column)}
        try:
            return [part.format(**values) for part in self.command]
        except (KeyError, IndexError, ValueError) as exc:
            raise NavigationError(f"Cannot fill editor command {self.command!r}: {exc!r}") from exc

    async def open_file(self, path: Path, line: int) -> None:
        argv = self.render(path, line)
        if shutil.which(argv[0]) is None:
            raise NavigationError(f"Editor command not found: {argv[0]}")
        logger.debug("Opening editor: %s", " ".join(argv))
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise NavigationError(f"Could not start editor '{argv[0]}': {exc}") from exc

        communicate = asyncio.ensure_future(proc.communicate())
        try:
            _, stderr = await asyncio.wait_for(asyncio.shield(communicate), timeout=self.wait_timeout)
        except asyncio.TimeoutError:
            logger.debug("Editor %s still running after %.1fs", argv[0], self.wait_timeout)
            self.background.add(communicate)
            communicate.add_done_callback(self.background.discard)
            return
        if proc.returncode:
            raise NavigationError(
                f"Editor '{argv[0]}' exited with status {proc.returncode}",
                output=stderr.decode("utf-8", errors="replace"),
            )

    def close(self) -> None:
        for pending in list(self.background):
            pending.cancel()
        self.background.clear()


def editor_from_settings(settings: EditorSettings, override: Optional[str] = None) -> CommandEditor:
    """Pick the editor for a run: CLI override, custom command, then preset."""
    if override:
        return CommandEditor.from_preset(override)
    if settings.command:
        return CommandEditor(settings.command, line_base=settings.line_base)
    return CommandEditor.from_preset(settings.preset)
