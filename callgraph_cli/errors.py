"""Failure classes raised along the analysis pipeline.

Every failure below the orchestrator is raised as one of these, so callers
can report it without inspecting low-level exceptions.
"""

from __future__ import annotations


class CallGraphError(Exception):
    """Base class for classified pipeline failures."""

    #: Warnings halt the run but are not framed as errors.
    is_warning = False

    def __init__(self, message: str, output: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.output = output

    def user_message(self) -> str:
        """Message shown to the user, including captured process output."""
        if self.output.strip():
            return f"{self.message}\n{self.output.strip()}"
        return self.message


class DiscoveryError(CallGraphError):
    """The discovery root could not be read."""


class NoFilesFound(CallGraphError):
    """No source file matched; the run stops before analysis."""

    is_warning = True


class BuildError(CallGraphError):
    """The analyzer artifact failed to build."""


class ExecutionError(CallGraphError):
    """The analyzer could not be run, exited nonzero, or timed out."""


class AnalysisCancelled(ExecutionError):
    """The analyzer process was stopped through a cancellation token."""


class ParseError(CallGraphError):
    """Analyzer output is not a valid call graph document."""


class InvalidScope(CallGraphError):
    """The requested analysis scope is not one of the offered options."""


class NavigationError(CallGraphError):
    """The editor could not be asked to open a file."""


class SessionError(CallGraphError):
    """The visualization session could not be started."""
