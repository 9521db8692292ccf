from scalargrad.core.autograd import (
    Context,
    Kind,
    Operation,
    Value,
    backward,
    topological_order,
)
from scalargrad.core.nn import (
    Neuron,
    Layer,
    MLP,
    as_values,
)
from scalargrad.core.loss import mean_squared_error
from scalargrad.core.optimizer import SGD
from scalargrad.core.network import NeuralNetwork, Phase
from scalargrad.core.observers import LoggingObserver, StatsObserver
from scalargrad.core.graph import (
    GraphEdge,
    GraphNode,
    MemoryGrapher,
    NodeKind,
    build_graph,
    collect_graph,
)
