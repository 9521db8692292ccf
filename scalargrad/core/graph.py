"""
Graph visualization adapter.

Walks a finished computation graph (read-only) and feeds presentation nodes
and edges to a Grapher. Every computed Value gets a separate operator node so
data and operations render distinctly:

    operand -> [op] -> result

The grapher is always passed in explicitly; nothing here holds global state.
"""

import json
import logging
import threading
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Optional

from scalargrad.core.autograd import Kind, Operation, Value
from scalargrad.errors import GraphError, GraphNotInitialized
from scalargrad.protocols import Grapher

logger = logging.getLogger(__name__)


class NodeKind(Enum):
    UNKNOWN = "unknown"
    INPUT = "input"
    WEIGHT = "weight"
    BIAS = "bias"
    VALUE = "value"
    OPERATOR = "operator"


_KIND_MAP = {
    Kind.UNKNOWN: NodeKind.UNKNOWN,
    Kind.INPUT: NodeKind.INPUT,
    Kind.WEIGHT: NodeKind.WEIGHT,
    Kind.BIAS: NodeKind.BIAS,
    Kind.VALUE: NodeKind.VALUE,
}


@dataclass(frozen=True)
class GraphNode:
    id: str
    label: str
    data: str
    grad: str
    operation: str
    kind: NodeKind
    layer: str = ""

    def to_dict(self) -> dict:
        d = asdict(self)
        d["kind"] = self.kind.value
        return d


@dataclass(frozen=True)
class GraphEdge:
    id: str
    source: str
    target: str

    def to_dict(self) -> dict:
        return asdict(self)


def value_to_node(value: Value) -> GraphNode:
    return GraphNode(
        id=str(value.id),
        label=value.label,
        data=str(value.data),
        grad=str(value.grad),
        operation=str(value.operation),
        kind=_KIND_MAP[value.kind],
        layer=str(value.layer) if value.layer >= 0 else "",
    )


def operator_node(value: Value) -> GraphNode:
    return GraphNode(
        id=f"op-{value.id}",
        label=str(value.operation),
        data="",
        grad="",
        operation=str(value.operation),
        kind=NodeKind.OPERATOR,
        layer=str(value.layer) if value.layer >= 0 else "",
    )


def collect_graph(root: Value) -> tuple[list[GraphNode], list[GraphEdge]]:
    """
    Presentation nodes and edges for everything reachable from root.

    Iterative DFS keyed on node id. Does not touch any Value, and returns the
    same lists (same order) every time it is called on the same graph.
    """
    nodes: dict[str, GraphNode] = {}
    edges: dict[tuple[str, str], GraphEdge] = {}
    visited: set[int] = set()
    stack = [root]

    def add_edge(source: str, target: str):
        if (source, target) not in edges:
            edges[(source, target)] = GraphEdge(id=f"{source}:{target}", source=source, target=target)

    while stack:
        value = stack.pop()
        if value.id in visited:
            continue
        visited.add(value.id)

        node = value_to_node(value)
        nodes[node.id] = node

        # Operands feed the operator node, which feeds the result.
        target = node.id
        if value.operation is not Operation.NOOP:
            op = operator_node(value)
            nodes[op.id] = op
            add_edge(op.id, node.id)
            target = op.id

        for operand in value.operands:
            add_edge(str(operand.id), target)
        for operand in reversed(value.operands):
            if operand.id not in visited:
                stack.append(operand)

    return list(nodes.values()), list(edges.values())


def build_graph(grapher: Optional[Grapher], root: Value) -> tuple[int, int]:
    """
    Reset grapher and populate it with the graph under root.

    Returns:
        (node count, edge count)

    Raises:
        GraphNotInitialized: grapher is None.
        GraphError: the grapher rejected the reset, a node or an edge.
    """
    if grapher is None:
        raise GraphNotInitialized("no grapher; cannot build graph")

    nodes, edges = collect_graph(root)
    by_id = {n.id: n for n in nodes}

    try:
        grapher.reset_graph()
    except Exception as exc:
        raise GraphError(f"failed to reset graph: {exc}") from exc

    for node in nodes:
        try:
            grapher.add_node(node)
        except Exception as exc:
            raise GraphError(f"add node {node.id}: {exc}") from exc

    for edge in edges:
        try:
            grapher.add_edge(by_id[edge.source], by_id[edge.target], edge)
        except Exception as exc:
            raise GraphError(f"add edge {edge.id}: {exc}") from exc

    logger.debug(f"[Graph] Built {len(nodes)} nodes, {len(edges)} edges from node {root.id}")
    return len(nodes), len(edges)


class MemoryGrapher:
    """Keeps the latest graph in memory; render() returns it as JSON."""

    media_type = "application/json"

    def __init__(self):
        self._lock = threading.Lock()
        self._nodes: Optional[dict[str, GraphNode]] = None
        self._edges: Optional[list[GraphEdge]] = None

    def reset_graph(self) -> None:
        with self._lock:
            self._nodes = {}
            self._edges = []

    def add_node(self, node: GraphNode) -> None:
        with self._lock:
            if self._nodes is None:
                raise GraphNotInitialized("reset_graph() must be called first")
            self._nodes[node.id] = node

    def add_edge(self, source: GraphNode, target: GraphNode, edge: GraphEdge) -> None:
        with self._lock:
            if self._edges is None:
                raise GraphNotInitialized("reset_graph() must be called first")
            self._edges.append(edge)

    @property
    def nodes(self) -> list[GraphNode]:
        return list(self._nodes.values()) if self._nodes is not None else []

    @property
    def edges(self) -> list[GraphEdge]:
        return list(self._edges) if self._edges is not None else []

    def render(self) -> bytes:
        with self._lock:
            if self._nodes is None:
                raise GraphNotInitialized("nothing has been drawn yet")
            payload = {
                "nodes": [n.to_dict() for n in self._nodes.values()],
                "edges": [e.to_dict() for e in self._edges],
            }
        return json.dumps(payload).encode("utf-8")
