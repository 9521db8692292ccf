"""
scalargrad: reverse-mode autodiff on decimal scalars, and a small MLP trained with it.

Usage:
    import scalargrad
    from scalargrad.config import GradConfig

    network = scalargrad.init(GradConfig(input_shape=3, shape=[4, 1]), grapher="memory")
    loss = network.step([0.5, -0.2, 0.1], [1.0])
    scalargrad.publish_graph(loss)

The core (scalargrad.core) can also be used on its own without init().
"""

import logging
import threading
from typing import TYPE_CHECKING, Optional, Union

from scalargrad.config import GradConfig
from scalargrad.protocols import Grapher, StepObserver

if TYPE_CHECKING:
    from scalargrad.core.autograd import Value
    from scalargrad.core.network import NeuralNetwork
    from scalargrad.core.observers import StatsObserver

__version__ = "0.1.0"

_log = logging.getLogger(__name__)

_config: Optional[GradConfig] = None
_network: Optional["NeuralNetwork"] = None
_grapher: Optional[Grapher] = None
_stats: Optional["StatsObserver"] = None
_initialized: bool = False
_init_lock = threading.Lock()
_graph_lock = threading.Lock()

_GRAPHER_SHORTCUTS: dict[str, type] = {}


def _get_grapher_class(name: str) -> type:
    """Lazy-load grapher classes so graphviz is only imported when asked for."""
    if not _GRAPHER_SHORTCUTS:
        from scalargrad.core.graph import MemoryGrapher
        from scalargrad.providers.graphviz import GraphvizGrapher
        _GRAPHER_SHORTCUTS["memory"] = MemoryGrapher
        _GRAPHER_SHORTCUTS["graphviz"] = GraphvizGrapher
    cls = _GRAPHER_SHORTCUTS.get(name)
    if cls is None:
        raise ValueError(
            f"Unknown grapher shortcut {name!r}. "
            f"Available: {', '.join(sorted(_GRAPHER_SHORTCUTS))}"
        )
    return cls


def init(
    config: GradConfig,
    grapher: "Grapher | str | None" = None,
    *,
    observers: tuple[StepObserver, ...] = (),
) -> "NeuralNetwork":
    """
    Build the process-wide network and grapher.

    Args:
        config: Network shape, initialisation and training parameters
        grapher: Renderer for published graphs, or a shortcut ("memory", "graphviz")
        observers: Extra step observers, added after the logging and stats ones

    Returns:
        The new network.
    """
    global _config, _network, _grapher, _stats, _initialized

    from scalargrad.core.network import NeuralNetwork
    from scalargrad.core.observers import LoggingObserver, StatsObserver

    if isinstance(grapher, str):
        cls = _get_grapher_class(grapher)
        if grapher == "graphviz":
            grapher = cls(
                fmt=config.graph_format,
                rank_dir=config.graph_rank_dir,
                layers=len(config.shape),
            )
        else:
            grapher = cls()

    stats = StatsObserver()
    network = NeuralNetwork(config, observers=[LoggingObserver(), stats, *observers])

    with _init_lock:
        _config = config
        _network = network
        _grapher = grapher
        _stats = stats
        _initialized = True

    _log.info(
        "scalargrad initialized: input_shape=%d, shape=%s, parameters=%d, grapher=%s",
        network.input_shape, network.shape, len(network.parameters()),
        type(grapher).__name__ if grapher is not None else None,
    )
    return network


def get_config() -> GradConfig:
    """Get the current config. Raises if not initialized."""
    if not _initialized or _config is None:
        raise RuntimeError("scalargrad not initialized. Call scalargrad.init() first.")
    return _config


def get_network() -> "NeuralNetwork":
    """Get the network. Raises if not initialized."""
    if not _initialized or _network is None:
        raise RuntimeError("scalargrad not initialized. Call scalargrad.init() first.")
    return _network


def get_grapher() -> Optional[Grapher]:
    """Get the grapher (None if init() was given none). Raises if not initialized."""
    if not _initialized:
        raise RuntimeError("scalargrad not initialized. Call scalargrad.init() first.")
    return _grapher


def get_stats() -> "StatsObserver":
    """Get the stats observer attached to the network. Raises if not initialized."""
    if not _initialized or _stats is None:
        raise RuntimeError("scalargrad not initialized. Call scalargrad.init() first.")
    return _stats


def publish_graph(root: "Value") -> tuple[int, int]:
    """
    Draw root's computation graph into the configured grapher.

    Returns:
        (node count, edge count)

    Raises:
        GraphNotInitialized: init() was called without a grapher.
        GraphError: the grapher rejected part of the graph.
    """
    from scalargrad.core.graph import build_graph

    grapher = get_grapher()
    with _graph_lock:
        return build_graph(grapher, root)
