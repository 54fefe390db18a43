"""Typer-based CLI for the Go call graph explorer."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from . import __version__
from .analyzer import AnalyzerRunner
from .cancellation import CancellationToken
from .cli_config import config_app
from .config import SCOPE_ACTIVE_FILE, SCOPE_ALL_FILES, SCOPE_OPTIONS
from .config_manager import Settings, load_settings
from .editor import editor_from_settings
from .graph_export import EXPORT_FORMATS, export_graph
from .orchestrator import AnalysisContext, CallGraphOrchestrator, RunOutcome, RunState
from .visualization import VisualizationHost

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="🕸️  Call graph explorer — analyze Go code and navigate its call graph in your browser.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(config_app, name="config")

SCOPE_ALIASES = {
    "active": SCOPE_ACTIVE_FILE,
    "file": SCOPE_ACTIVE_FILE,
    "all": SCOPE_ALL_FILES,
    "project": SCOPE_ALL_FILES,
}

EXIT_WARNING = 2


class ConsoleReporter:
    """Print run outcomes with Rich."""

    def info(self, message: str) -> None:
        console.print(f"[cyan]ℹ[/cyan] {escape(message)}")

    def warning(self, message: str) -> None:
        console.print(f"[yellow]⚠ {escape(message)}[/yellow]")

    def error(self, message: str) -> None:
        err_console.print(f"[red]✗ {escape(message)}[/red]")


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"callgraph v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging."),
):
    """Discover Go files, run the call graph analyzer, and explore the result."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _prompt_scope() -> Optional[str]:
    """Ask for a scope; an empty answer means no selection."""
    console.print("[bold]Select an analysis option[/bold]")
    for i, label in enumerate(SCOPE_OPTIONS, start=1):
        console.print(f"  [cyan]{i}[/cyan]. {label}")
    answer = typer.prompt("Option", default="", show_default=False).strip()
    if not answer:
        return None
    if answer.isdigit() and 1 <= int(answer) <= len(SCOPE_OPTIONS):
        return SCOPE_OPTIONS[int(answer) - 1]
    return SCOPE_ALIASES.get(answer.lower(), answer)


def _resolve_choice(scope: Optional[str]) -> Optional[str]:
    if scope is None:
        return _prompt_scope()
    try:
        return SCOPE_ALIASES[scope.lower()]
    except KeyError:
        raise typer.BadParameter(f"Scope must be one of: {', '.join(sorted(SCOPE_ALIASES))}") from None


def _build_orchestrator(
    settings: Settings,
    workspace: Path,
    active_file: Optional[Path],
    editor: Optional[str] = None,
    open_browser: Optional[bool] = None,
) -> CallGraphOrchestrator:
    try:
        editor_capability = editor_from_settings(settings.editor, override=editor)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    context = AnalysisContext(
        settings=settings,
        workspace_root=workspace.resolve(),
        runner=AnalyzerRunner(settings.analyzer),
        editor=editor_capability,
        reporter=ConsoleReporter(),
        host=VisualizationHost(settings.server, open_browser=open_browser),
        active_file=active_file.resolve() if active_file else None,
    )
    return CallGraphOrchestrator(context)


def _exit_code(outcome: RunOutcome) -> int:
    if outcome.error is not None:
        return EXIT_WARNING if outcome.error.is_warning else 1
    return 0


def _run(orchestrator: CallGraphOrchestrator, choice: Optional[str], visualize: bool) -> RunOutcome:
    token = CancellationToken()
    coro = orchestrator.run(choice, token) if visualize else orchestrator.analyze(choice, token)
    try:
        return asyncio.run(coro)
    except KeyboardInterrupt:
        token.cancel("interrupted")
        console.print("\n[dim]Stopped.[/dim]")
        return RunOutcome(RunState.IDLE)


@app.command("analyze")
def analyze(
    workspace: Path = typer.Argument(Path("."), exists=True, file_okay=False, help="Project root to analyze."),
    active_file: Optional[Path] = typer.Option(
        None, "--file", "-f", exists=True, dir_okay=False, help="File used by the 'Active File' scope."
    ),
    scope: Optional[str] = typer.Option(None, "--scope", "-s", help="active or all. Prompts when omitted."),
    editor: Optional[str] = typer.Option(None, "--editor", "-e", help="Editor preset used to open files."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port for the local graph server."),
    no_browser: bool = typer.Option(False, "--no-browser", help="Do not open a browser window."),
    timeout: Optional[float] = typer.Option(None, "--timeout", "-t", min=1, help="Analyzer timeout in seconds."),
):
    """🔍 Analyze Go code and open the interactive call graph.

    Example:
      callgraph analyze ./myservice --scope all
      callgraph analyze . --file cmd/main.go --scope active --editor gvim
    """
    settings = load_settings()
    if port is not None:
        settings.server.port = port
    if timeout is not None:
        settings.analyzer.timeout = timeout

    choice = _resolve_choice(scope)
    if choice is None:
        console.print("[dim]No option selected.[/dim]")
        raise typer.Exit(code=0)

    orchestrator = _build_orchestrator(
        settings, workspace, active_file, editor=editor, open_browser=False if no_browser else None
    )
    outcome = _run(orchestrator, choice, visualize=True)
    raise typer.Exit(code=_exit_code(outcome))


@app.command("export")
def export(
    workspace: Path = typer.Argument(Path("."), exists=True, file_okay=False, help="Project root to analyze."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file path."),
    fmt: str = typer.Option("json", "--format", help="Export format: json, dot or html."),
    active_file: Optional[Path] = typer.Option(
        None, "--file", "-f", exists=True, dir_okay=False, help="Analyze only this file."
    ),
    focus: str = typer.Option("", "--focus", help="Only export calls touching this function (dot)."),
):
    """📤 Analyze and write the call graph to a file instead of serving it."""
    fmt = fmt.lower()
    if fmt not in EXPORT_FORMATS:
        raise typer.BadParameter(f"Format must be one of: {', '.join(EXPORT_FORMATS)}")

    settings = load_settings()
    choice = SCOPE_ACTIVE_FILE if active_file else SCOPE_ALL_FILES
    orchestrator = _build_orchestrator(settings, workspace, active_file, open_browser=False)
    outcome = _run(orchestrator, choice, visualize=False)
    if not outcome.ok or outcome.graph is None:
        raise typer.Exit(code=_exit_code(outcome))

    if output is None:
        output = Path.cwd() / f"{workspace.resolve().name}_callgraph.{fmt}"
    export_graph(outcome.graph, output, fmt, focus=focus)
    typer.echo(f"Exported {len(outcome.graph.nodes)} functions to {output}")


if __name__ == "__main__":
    app()
