"""Graph export helpers for JSON, DOT and standalone HTML outputs."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List

from .models import CallGraph
from .schemas import dump_call_graph
from .visualization import render_graph_html

EXPORT_FORMATS = ("json", "dot", "html")


def export_json(graph: CallGraph, output_file: Path) -> None:
    output_file.write_text(dump_call_graph(graph, indent=2), encoding="utf-8")


def export_dot(graph: CallGraph, output_file: Path, focus: str = "") -> None:
    selected = _focused_subgraph(graph, focus)

    lines = ["digraph CallGraph {"]
    lines.append("  rankdir=LR;")
    lines.append("  node [shape=box];")

    for node_id in selected["nodes"]:
        node = graph.node(node_id)
        if node is None:
            continue
        label = f"{_esc(node.label)}\\n{_esc(Path(node.file).name)}:{node.line}"
        lines.append(f'  "{_esc(node.id)}" [label="{label}"];')

    for caller, callee in selected["edges"]:
        lines.append(f'  "{_esc(caller)}" -> "{_esc(callee)}";')

    lines.append("}")
    output_file.write_text("\n".join(lines) + "\n", encoding="utf-8")


def export_html(graph: CallGraph, output_file: Path, title: str = "Go Call Graph") -> None:
    """Export a standalone page; it shows locations instead of opening them."""
    output_file.write_text(render_graph_html(graph, title=title, live=False), encoding="utf-8")


def export_graph(graph: CallGraph, output_file: Path, fmt: str, focus: str = "") -> None:
    if fmt == "json":
        export_json(graph, output_file)
    elif fmt == "dot":
        export_dot(graph, output_file, focus=focus)
    elif fmt == "html":
        export_html(graph, output_file)
    else:
        raise ValueError(f"Unknown export format '{fmt}'. Use one of: {', '.join(EXPORT_FORMATS)}")


def _focused_subgraph(graph: CallGraph, focus: str) -> Dict[str, List]:
    all_edges = [(e.caller_id, e.callee_id) for e in graph.edges]
    if not focus:
        return {"nodes": [n.id for n in graph.nodes], "edges": all_edges}

    focus_ids = {n.id for n in graph.nodes if focus in n.id or focus in n.label}
    if not focus_ids:
        return {"nodes": [n.id for n in graph.nodes], "edges": all_edges}

    edge_subset = [e for e in all_edges if e[0] in focus_ids or e[1] in focus_ids]
    node_subset = set(focus_ids)
    for caller, callee in edge_subset:
        node_subset.add(caller)
        node_subset.add(callee)
    return {"nodes": sorted(node_subset), "edges": edge_subset}


def _esc(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')
