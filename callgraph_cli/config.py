"""Configuration paths and defaults for the call graph explorer."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("CALLGRAPH_HOME", str(Path.home() / ".callgraph"))).expanduser()

PACKAGE_DIR = Path(__file__).resolve().parent
ANALYZER_SOURCE_DIR = PACKAGE_DIR / "tools" / "golang"
TEMPLATE_DIR = PACKAGE_DIR / "templates"

TARGET_EXTENSION = ".go"

# Labels offered by the scope prompt
SCOPE_ACTIVE_FILE = "Active File"
SCOPE_ALL_FILES = "All Files in Project"
SCOPE_OPTIONS = (SCOPE_ACTIVE_FILE, SCOPE_ALL_FILES)

DEFAULT_BUILD_COMMAND = ["go", "build", "-o", "{output}", "."]
DEFAULT_ANALYZER_TIMEOUT = 120.0
DEFAULT_BUILD_TIMEOUT = 300.0

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8765
DEFAULT_IDLE_GRACE = 5.0
DEFAULT_EDITOR = "code"
