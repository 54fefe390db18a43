"""Core data models shared by discovery, analysis and visualization."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple, Union

# Ordered, duplicate-free absolute paths handed to the analyzer.
SourceFileSet = Tuple[str, ...]


def make_file_set(paths: Iterable[Union[str, Path]]) -> SourceFileSet:
    """Build a SourceFileSet, keeping first occurrences in order."""
    seen: Dict[str, None] = {}
    for p in paths:
        seen.setdefault(str(Path(p).absolute()), None)
    return tuple(seen)


@dataclass(frozen=True)
class ActiveFile:
    path: Path


@dataclass(frozen=True)
class AllFiles:
    root: Path


AnalysisScope = Union[ActiveFile, AllFiles]


@dataclass(frozen=True)
class FunctionNode:
    id: str
    label: str
    file: str
    line: int
    args: Tuple[str, ...] = ()
    returns: Tuple[str, ...] = ()
    endpoint: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "label": self.label, "file": self.file, "line": self.line}
        if self.args:
            data["args"] = list(self.args)
        if self.returns:
            data["returns"] = list(self.returns)
        if self.endpoint:
            data["endpoint"] = self.endpoint
        return data


@dataclass(frozen=True)
class CallEdge:
    caller_id: str
    callee_id: str
    line: Optional[int] = None
    file: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"callerId": self.caller_id, "calleeId": self.callee_id}
        if self.line is not None:
            data["line"] = self.line
        if self.file:
            data["file"] = self.file
        return data


@dataclass(frozen=True)
class CallGraph:
    """Immutable analysis result.

    Node ids are unique and every edge references existing node ids; both are
    checked when a graph is parsed from analyzer output.
    """

    nodes: Tuple[FunctionNode, ...] = ()
    edges: Tuple[CallEdge, ...] = ()
    _index: Dict[str, FunctionNode] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._index.update((n.id, n) for n in self.nodes)

    def node(self, node_id: str) -> Optional[FunctionNode]:
        return self._index.get(node_id)

    def callees(self, node_id: str) -> Tuple[str, ...]:
        return tuple(e.callee_id for e in self.edges if e.caller_id == node_id)

    def callers(self, node_id: str) -> Tuple[str, ...]:
        return tuple(e.caller_id for e in self.edges if e.callee_id == node_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }


@dataclass(frozen=True)
class NavigationRequest:
    """Ask the host to open ``file`` at the 1-based ``line``."""

    file: str
    line: int
