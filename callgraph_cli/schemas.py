"""Pydantic schemas for untrusted JSON: analyzer output and navigation messages."""

from __future__ import annotations

import json
import logging
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ParseError
from .models import CallEdge, CallGraph, FunctionNode, NavigationRequest

logger = logging.getLogger(__name__)


class NodeInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    label: str
    file: str
    line: int = Field(ge=1, strict=True)
    args: List[str] = Field(default_factory=list)
    returns: List[str] = Field(default_factory=list)
    endpoint: str = ""


class EdgeInput(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    caller_id: str = Field(alias="callerId")
    callee_id: str = Field(alias="calleeId")
    line: Optional[int] = Field(default=None, ge=1, strict=True)
    file: str = ""


class GraphInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    nodes: List[NodeInput]
    edges: List[EdgeInput]


class OpenFileMessage(BaseModel):
    """``{"command": "openFile", "file": ..., "line": ...}`` from the page."""

    command: Literal["openFile"]
    file: str = Field(min_length=1)
    line: int = Field(ge=1, strict=True)

    def to_request(self) -> NavigationRequest:
        return NavigationRequest(file=self.file, line=self.line)


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(part) for part in err.get("loc", ()))
    return f"{loc}: {err.get('msg', 'invalid value')}" if loc else str(err.get("msg", "invalid value"))


def parse_call_graph(text: str) -> CallGraph:
    """Parse analyzer stdout into a :class:`CallGraph`.

    Raises:
        ParseError: the text is not one JSON document matching the graph
            schema, or the graph breaks referential integrity.
    """
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Analyzer output is not valid JSON: {exc}") from exc
    except RecursionError as exc:
        raise ParseError("Analyzer output is nested too deeply") from exc

    try:
        doc = GraphInput.model_validate(payload)
    except ValidationError as exc:
        raise ParseError(f"Analyzer output does not match the call graph schema ({_first_error(exc)})") from exc

    nodes: List[FunctionNode] = []
    seen: set[str] = set()
    for n in doc.nodes:
        if n.id in seen:
            raise ParseError(f"Duplicate node id in analyzer output: {n.id!r}")
        seen.add(n.id)
        nodes.append(
            FunctionNode(
                id=n.id,
                label=n.label,
                file=n.file,
                line=n.line,
                args=tuple(n.args),
                returns=tuple(n.returns),
                endpoint=n.endpoint,
            )
        )

    edges: List[CallEdge] = []
    for e in doc.edges:
        for ref in (e.caller_id, e.callee_id):
            if ref not in seen:
                raise ParseError(f"Edge {e.caller_id!r} -> {e.callee_id!r} references unknown node {ref!r}")
        edges.append(CallEdge(caller_id=e.caller_id, callee_id=e.callee_id, line=e.line, file=e.file))

    logger.debug("Parsed call graph: %d nodes, %d edges", len(nodes), len(edges))
    return CallGraph(nodes=tuple(nodes), edges=tuple(edges))


def dump_call_graph(graph: CallGraph, indent: Optional[int] = None) -> str:
    """Serialize a graph in the analyzer wire format."""
    return json.dumps(graph.to_dict(), indent=indent)
