"""
Collaborator protocols for dependency injection.

Consumers implement these and pass them to NeuralNetwork or build_graph().
The core never renders, exports metrics, or picks a loss on its own.
"""

from typing import TYPE_CHECKING, Protocol, Sequence, runtime_checkable

if TYPE_CHECKING:
    from scalargrad.core.autograd import Value
    from scalargrad.core.graph import GraphEdge, GraphNode
    from scalargrad.core.network import NeuralNetwork, Phase


@runtime_checkable
class Grapher(Protocol):
    """Sink for presentation nodes and edges; owns rendering."""

    def reset_graph(self) -> None:
        """Drop everything drawn so far."""
        ...

    def add_node(self, node: "GraphNode") -> None:
        ...

    def add_edge(self, source: "GraphNode", target: "GraphNode", edge: "GraphEdge") -> None:
        ...

    def render(self) -> bytes:
        """
        Render the current graph.

        Returns:
            Encoded output (svg, png, json... renderer decides).
        """
        ...


@runtime_checkable
class LossFunction(Protocol):
    """Reduces an output vector and an expectation vector to one scalar node."""

    def __call__(self, output: Sequence["Value"], expectation: Sequence) -> "Value":
        ...


@runtime_checkable
class Optimizer(Protocol):
    """Mutates leaf parameters in place from their accumulated gradients."""

    def __call__(self, parameters: Sequence["Value"]) -> None:
        ...


@runtime_checkable
class StepObserver(Protocol):
    """
    Hook for logging and stats.

    Called synchronously from inside NeuralNetwork. Exceptions raised here are
    logged and otherwise ignored.
    """

    def on_phase_change(self, network: "NeuralNetwork", old: "Phase", new: "Phase") -> None:
        ...

    def on_step_complete(self, network: "NeuralNetwork", loss_value: "Value", elapsed: float) -> None:
        ...

    def on_step_failed(self, network: "NeuralNetwork", error: Exception) -> None:
        ...
