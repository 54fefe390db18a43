"""Tests for parsing analyzer output and page messages."""

import json

import pytest
from pydantic import ValidationError

from callgraph_cli.errors import ParseError
from callgraph_cli.models import CallEdge, CallGraph, FunctionNode, NavigationRequest
from callgraph_cli.schemas import OpenFileMessage, dump_call_graph, parse_call_graph


def _doc(nodes, edges):
    return json.dumps({"nodes": nodes, "edges": edges})


def test_parse_minimal_graph():
    text = _doc(
        [
            {"id": "main", "label": "main", "file": "/w/a.go", "line": 3},
            {"id": "helper", "label": "helper", "file": "/w/b.go", "line": 3},
        ],
        [{"callerId": "main", "calleeId": "helper"}],
    )

    graph = parse_call_graph(text)

    assert [n.id for n in graph.nodes] == ["main", "helper"]
    assert graph.edges == (CallEdge("main", "helper"),)
    assert graph.node("helper").file == "/w/b.go"
    assert graph.callees("main") == ("helper",)
    assert graph.callers("helper") == ("main",)


def test_parse_optional_fields():
    text = _doc(
        [
            {
                "id": "GET /users",
                "label": "GET /users",
                "file": "/w/main.go",
                "line": 10,
                "endpoint": "/users",
            },
            {
                "id": "ListUsers",
                "label": "ListUsers",
                "file": "/w/users.go",
                "line": 4,
                "args": ["w http.ResponseWriter", "r *http.Request"],
                "returns": ["error"],
                "extra": "ignored",
            },
        ],
        [{"callerId": "GET /users", "calleeId": "ListUsers", "line": 10, "file": "/w/main.go"}],
    )

    graph = parse_call_graph(text)

    assert graph.node("GET /users").endpoint == "/users"
    assert graph.node("ListUsers").args == ("w http.ResponseWriter", "r *http.Request")
    assert graph.node("ListUsers").returns == ("error",)
    assert graph.edges[0].line == 10


def test_empty_graph_is_valid():
    graph = parse_call_graph('{"nodes": [], "edges": []}')

    assert graph.nodes == () and graph.edges == ()


def test_dump_then_parse_keeps_graph():
    graph = CallGraph(
        nodes=(FunctionNode("a", "a", "/w/a.go", 1, args=("x int",)), FunctionNode("b", "b", "/w/b.go", 2)),
        edges=(CallEdge("a", "b", line=1, file="/w/a.go"),),
    )

    assert parse_call_graph(dump_call_graph(graph)) == graph


def test_edges_use_wire_key_names():
    graph = CallGraph(nodes=(FunctionNode("a", "a", "f", 1),), edges=(CallEdge("a", "a"),))

    payload = json.loads(dump_call_graph(graph))

    assert payload["edges"] == [{"callerId": "a", "calleeId": "a"}]


@pytest.mark.parametrize("text", ['{"nodes": [', "", "not json", '{"nodes": []} trailing'])
def test_invalid_json(text):
    with pytest.raises(ParseError, match="not valid JSON"):
        parse_call_graph(text)


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {"nodes": []},
        {"nodes": [{"id": "a", "label": "a", "file": "f"}], "edges": []},
        {"nodes": [{"id": "a", "label": "a", "file": "f", "line": "x"}], "edges": []},
        {"nodes": [{"id": "a", "label": "a", "file": "f", "line": "10"}], "edges": []},
        {"nodes": [{"id": "a", "label": "a", "file": "f", "line": True}], "edges": []},
        {"nodes": [{"id": "a", "label": "a", "file": "f", "line": 1.5}], "edges": []},
        {"nodes": [], "edges": [{"callerId": "a", "calleeId": "a", "line": "3"}]},
        {"nodes": [], "edges": [{"callerId": "a"}]},
    ],
)
def test_schema_mismatch(payload):
    with pytest.raises(ParseError, match="does not match"):
        parse_call_graph(json.dumps(payload))


def test_line_must_be_positive():
    text = _doc([{"id": "a", "label": "a", "file": "f", "line": 0}], [])

    with pytest.raises(ParseError):
        parse_call_graph(text)


def test_deeply_nested_output():
    with pytest.raises(ParseError, match="nested too deeply"):
        parse_call_graph("[" * 200000 + "]" * 200000)


def test_duplicate_node_id():
    node = {"id": "a", "label": "a", "file": "f", "line": 1}

    with pytest.raises(ParseError, match="Duplicate node id"):
        parse_call_graph(_doc([node, node], []))


def test_dangling_edge():
    text = _doc([{"id": "a", "label": "a", "file": "f", "line": 1}], [{"callerId": "a", "calleeId": "ghost"}])

    with pytest.raises(ParseError, match="unknown node 'ghost'"):
        parse_call_graph(text)


class TestOpenFileMessage:
    def test_valid(self):
        msg = OpenFileMessage.model_validate({"command": "openFile", "file": "a.go", "line": 10})

        assert msg.to_request() == NavigationRequest(file="a.go", line=10)

    @pytest.mark.parametrize(
        "payload",
        [
            {"command": "open", "file": "a.go", "line": 1},
            {"command": "openFile", "file": "", "line": 1},
            {"command": "openFile", "file": "a.go", "line": 0},
            {"command": "openFile", "file": "a.go"},
            {"command": "openFile", "file": "a.go", "line": "10"},
            {"command": "openFile", "file": "a.go", "line": True},
            "openFile",
        ],
    )
    def test_invalid(self, payload):
        with pytest.raises(ValidationError):
            OpenFileMessage.model_validate(payload)
