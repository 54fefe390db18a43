"""Configuration manager for the call graph explorer using TOML files."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import toml

from . import config
from .config import BASE_DIR

logger = logging.getLogger(__name__)

CONFIG_FILE = BASE_DIR / "config.toml"


# Default values for each section of config.toml
DEFAULT_CONFIGS: Dict[str, Dict[str, Any]] = {
    "analyzer": {
        "source_dir": str(config.ANALYZER_SOURCE_DIR),
        "build_command": list(config.DEFAULT_BUILD_COMMAND),
        "timeout": config.DEFAULT_ANALYZER_TIMEOUT,
        "build_timeout": config.DEFAULT_BUILD_TIMEOUT,
    },
    "discovery": {
        "extension": config.TARGET_EXTENSION,
        "exclude": [],
    },
    "editor": {
        "preset": config.DEFAULT_EDITOR,
    },
    "server": {
        "host": config.DEFAULT_HOST,
        "port": config.DEFAULT_PORT,
        "open_browser": True,
        "idle_grace": config.DEFAULT_IDLE_GRACE,
    },
}


@dataclass
class AnalyzerSettings:
    source_dir: Path
    build_command: List[str]
    cache_dir: Path
    timeout: float = config.DEFAULT_ANALYZER_TIMEOUT
    build_timeout: float = config.DEFAULT_BUILD_TIMEOUT


@dataclass
class EditorSettings:
    preset: str = config.DEFAULT_EDITOR
    command: List[str] = field(default_factory=list)
    line_base: int = 1


@dataclass
class ServerSettings:
    host: str = config.DEFAULT_HOST
    port: int = config.DEFAULT_PORT
    open_browser: bool = True
    idle_grace: float = config.DEFAULT_IDLE_GRACE


@dataclass
class Settings:
    """Effective settings for one run: config.toml merged over defaults."""

    analyzer: AnalyzerSettings
    editor: EditorSettings = field(default_factory=EditorSettings)
    server: ServerSettings = field(default_factory=ServerSettings)
    extension: str = config.TARGET_EXTENSION
    exclude: List[str] = field(default_factory=list)


def load_full_config() -> Dict[str, Any]:
    """Load the entire TOML config (all sections).

    Returns an empty dict when the file is missing or cannot be parsed.
    """
    if not CONFIG_FILE.exists():
        return {}
    try:
        with open(CONFIG_FILE, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", CONFIG_FILE, exc)
        return {}


def _save_full_config(data: Dict[str, Any]) -> bool:
    """Write entire config dict to TOML file, preserving all sections."""
    try:
        CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
        with open(CONFIG_FILE, "w", encoding="utf-8") as f:
            toml.dump(data, f)
        return True
    except OSError as exc:
        logger.warning("Could not write config %s: %s", CONFIG_FILE, exc)
        return False


def load_section(name: str) -> Dict[str, Any]:
    """Return one config section with defaults filled in."""
    merged = dict(DEFAULT_CONFIGS.get(name, {}))
    section = load_full_config().get(name, {})
    if isinstance(section, dict):
        merged.update(section)
    return merged


def save_section(name: str, values: Dict[str, Any]) -> bool:
    """Replace one section of config.toml, keeping the other sections."""
    data = load_full_config()
    data[name] = values
    return _save_full_config(data)


def save_editor_config(preset: str = "", command: Optional[List[str]] = None, line_base: int = 1) -> bool:
    """Save editor choice to config TOML.

    Args:
        preset: Name of a known editor preset (``code``, ``gvim`` ...).
        command: Custom command template, used instead of a preset.
        line_base: 0 or 1, the line convention of the custom command.

    Returns:
        True if saved successfully.
    """
    if command:
        values: Dict[str, Any] = {"command": list(command), "line_base": line_base}
    else:
        values = {"preset": preset or config.DEFAULT_EDITOR}
    return save_section("editor", values)


def save_analyzer_config(
    source_dir: Optional[str] = None,
    build_command: Optional[List[str]] = None,
    timeout: Optional[float] = None,
    build_timeout: Optional[float] = None,
) -> bool:
    """Update the ``[analyzer]`` section, leaving unspecified keys untouched."""
    section = load_full_config().get("analyzer", {})
    if source_dir is not None:
        section["source_dir"] = source_dir
    if build_command is not None:
        section["build_command"] = list(build_command)
    if timeout is not None:
        section["timeout"] = timeout
    if build_timeout is not None:
        section["build_timeout"] = build_timeout
    return save_section("analyzer", section)


def clear_config() -> bool:
    """Remove config.toml, resetting everything to defaults."""
    try:
        CONFIG_FILE.unlink(missing_ok=True)
        return True
    except OSError as exc:
        logger.warning("Could not remove config %s: %s", CONFIG_FILE, exc)
        return False


def load_settings() -> Settings:
    """Build a :class:`Settings` from config.toml merged over defaults."""
    analyzer = load_section("analyzer")
    discovery = load_section("discovery")
    editor = load_section("editor")
    server = load_section("server")

    extension = str(discovery.get("extension") or config.TARGET_EXTENSION)
    if not extension.startswith("."):
        extension = "." + extension

    return Settings(
        analyzer=AnalyzerSettings(
            source_dir=Path(analyzer["source_dir"]).expanduser(),
            build_command=[str(part) for part in analyzer["build_command"]],
            cache_dir=CONFIG_FILE.parent / "bin",
            timeout=float(analyzer["timeout"]),
            build_timeout=float(analyzer["build_timeout"]),
        ),
        editor=EditorSettings(
            preset=str(editor.get("preset") or config.DEFAULT_EDITOR),
            command=[str(part) for part in editor.get("command", [])],
            line_base=int(editor.get("line_base", 1)),
        ),
        server=ServerSettings(
            host=str(server["host"]),
            port=int(server["port"]),
            open_browser=bool(server["open_browser"]),
            idle_grace=float(server["idle_grace"]),
        ),
        extension=extension,
        exclude=[str(name) for name in discovery.get("exclude", [])],
    )
