"""`callgraph config` commands: show and change config.toml."""

from __future__ import annotations

from typing import List, Optional

import typer

from . import config_manager
from .editor import EDITOR_PRESETS, check_template

config_app = typer.Typer(
    help="⚙️  Configuration — analyzer, editor and server settings.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def print_success(message: str):
    """Print success message."""
    typer.echo(typer.style(f"✅ {message}", fg=typer.colors.GREEN))


def print_error(message: str):
    """Print error message."""
    typer.echo(typer.style(f"❌ {message}", fg=typer.colors.RED), err=True)


def _row(name: str, value: object) -> None:
    typer.echo(f"  {name:<14}{typer.style(str(value), fg=typer.colors.WHITE, bold=True)}")


@config_app.command("show")
def show_config():
    """Show the effective configuration."""
    settings = config_manager.load_settings()

    typer.echo(typer.style("\n  Analyzer", bold=True))
    _row("Sources", settings.analyzer.source_dir)
    _row("Build", " ".join(settings.analyzer.build_command))
    _row("Cache", settings.analyzer.cache_dir)
    _row("Timeout", f"{settings.analyzer.timeout:g}s (build {settings.analyzer.build_timeout:g}s)")

    typer.echo(typer.style("\n  Discovery", bold=True))
    _row("Extension", settings.extension)
    _row("Exclude", ", ".join(settings.exclude) or "(none)")

    typer.echo(typer.style("\n  Editor", bold=True))
    if settings.editor.command:
        _row("Command", " ".join(settings.editor.command))
        _row("Line base", settings.editor.line_base)
    else:
        _row("Preset", settings.editor.preset)

    typer.echo(typer.style("\n  Server", bold=True))
    _row("Address", f"{settings.server.host}:{settings.server.port}")
    _row("Browser", "open" if settings.server.open_browser else "manual")

    exists = config_manager.CONFIG_FILE.exists()
    suffix = "" if exists else " (not created yet, using defaults)"
    typer.echo(f"\n  Config    {typer.style(str(config_manager.CONFIG_FILE), dim=True)}{suffix}\n")


@config_app.command("set-editor")
def set_editor(
    preset: Optional[str] = typer.Argument(None, help=f"Preset: {', '.join(sorted(EDITOR_PRESETS))}."),
    command: Optional[List[str]] = typer.Option(
        None, "--command", "-c", help="Custom command part, repeatable. Use {file}, {line}, {column}."
    ),
    line_base: int = typer.Option(1, "--line-base", min=0, max=1, help="Line numbering of the custom command."),
):
    """Choose the editor that opens files clicked in the graph.

    Example:
      callgraph config set-editor gvim
      callgraph config set-editor -c myedit -c --pos -c {file}:{line} --line-base 0
    """
    if not preset and not command:
        raise typer.BadParameter("Give a preset name or --command.")
    if preset and preset not in EDITOR_PRESETS:
        print_error(f"Unknown editor preset '{preset}'. Known: {', '.join(sorted(EDITOR_PRESETS))}")
        raise typer.Exit(code=1)
    if command:
        try:
            check_template(command)
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc

    if not config_manager.save_editor_config(preset=preset or "", command=command, line_base=line_base):
        print_error("Failed to save configuration")
        raise typer.Exit(code=1)
    print_success(f"Editor set to {' '.join(command) if command else preset}")


@config_app.command("set-analyzer")
def set_analyzer(
    source_dir: Optional[str] = typer.Option(None, "--source-dir", help="Directory holding the analyzer sources."),
    build: Optional[List[str]] = typer.Option(
        None, "--build", "-b", help="Build command part, repeatable. {output} is the artifact path."
    ),
    timeout: Optional[float] = typer.Option(None, "--timeout", min=1, help="Analyzer run timeout (seconds)."),
    build_timeout: Optional[float] = typer.Option(None, "--build-timeout", min=1, help="Build timeout (seconds)."),
):
    """Change how the analyzer is built and run."""
    if build and not any("{output}" in part for part in build):
        raise typer.BadParameter("The build command must contain {output}.")
    if not config_manager.save_analyzer_config(
        source_dir=source_dir,
        build_command=build or None,
        timeout=timeout,
        build_timeout=build_timeout,
    ):
        print_error("Failed to save configuration")
        raise typer.Exit(code=1)
    print_success("Analyzer settings saved")


@config_app.command("reset")
def reset_config():
    """Delete config.toml and go back to defaults."""
    if not config_manager.clear_config():
        print_error("Failed to remove configuration")
        raise typer.Exit(code=1)
    print_success("Configuration reset to defaults")
