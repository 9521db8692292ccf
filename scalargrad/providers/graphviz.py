"""
Graphviz renderer for computation graphs.

Satisfies protocols.Grapher. Nodes are coloured by kind, operator nodes are
drawn as ellipses between the records they connect. render() shells out to
the Graphviz `dot` binary through the graphviz package.
"""

import logging
import threading
from typing import Optional

from graphviz import Digraph

from scalargrad.core.graph import GraphEdge, GraphNode, NodeKind
from scalargrad.errors import GraphNotInitialized

logger = logging.getLogger(__name__)

NODE_COLORS = {
    NodeKind.INPUT: "aquamarine3",
    NodeKind.OPERATOR: "coral1",
    NodeKind.VALUE: "lightpink",
    NodeKind.BIAS: "indianred",
    NodeKind.WEIGHT: "lightskyblue",
    NodeKind.UNKNOWN: "grey80",
}
EDGE_COLOR = "lightseagreen"

MEDIA_TYPES = {
    "svg": "image/svg+xml",
    "png": "image/png",
    "pdf": "application/pdf",
    "dot": "text/vnd.graphviz",
    "gv": "text/vnd.graphviz",
}


def layers_string(layers: int) -> str:
    """Graphviz `layers` attribute for n layers: 3 -> "0:1:2"."""
    return ":".join(str(i) for i in range(layers))


class GraphvizGrapher:
    """Builds a graphviz.Digraph; render() returns the encoded output."""

    def __init__(self, fmt: str = "svg", rank_dir: str = "LR", layers: int = 0,
                 layout: str = "dot"):
        self.format = fmt
        self.rank_dir = rank_dir or "LR"
        self.layers = layers
        self.layout = layout or "dot"
        self._lock = threading.Lock()
        self._graph: Optional[Digraph] = None

    @property
    def media_type(self) -> str:
        return MEDIA_TYPES.get(self.format, "application/octet-stream")

    def _new_graph(self) -> Digraph:
        graph_attr = {"rankdir": self.rank_dir, "layout": self.layout}
        if self.layers > 0:
            graph_attr["layers"] = layers_string(self.layers)
        return Digraph(format=self.format, graph_attr=graph_attr)

    def reset_graph(self) -> None:
        with self._lock:
            self._graph = self._new_graph()

    def add_node(self, node: GraphNode) -> None:
        with self._lock:
            if self._graph is None:
                raise GraphNotInitialized("reset_graph() must be called first")

            attrs = {"style": "filled", "fillcolor": NODE_COLORS[node.kind]}
            if node.layer and self.layers > 0:
                attrs["layer"] = node.layer

            if node.kind is NodeKind.OPERATOR:
                self._graph.node(node.id, label=node.operation, shape="ellipse", **attrs)
            else:
                title = node.label or node.kind.value
                self._graph.node(
                    node.id,
                    label=f"{title} | data {_short(node.data)} | grad {_short(node.grad)}",
                    shape="record",
                    **attrs,
                )

    def add_edge(self, source: GraphNode, target: GraphNode, edge: GraphEdge) -> None:
        with self._lock:
            if self._graph is None:
                raise GraphNotInitialized("reset_graph() must be called first")
            self._graph.edge(source.id, target.id, color=EDGE_COLOR)

    @property
    def source(self) -> str:
        """DOT source of the current graph."""
        with self._lock:
            if self._graph is None:
                raise GraphNotInitialized("nothing has been drawn yet")
            return self._graph.source

    def render(self) -> bytes:
        with self._lock:
            if self._graph is None:
                raise GraphNotInitialized("nothing has been drawn yet")
            graph = self._graph
        return graph.pipe(format=self.format)


def _short(text: str) -> str:
    """Four decimal places for display; the raw value if it doesn't parse."""
    try:
        return f"{float(text):.4f}"
    except ValueError:
        return text
