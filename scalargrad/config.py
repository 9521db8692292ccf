"""
scalargrad configuration.

Network shape, initialisation and training parameters are set here.
No hardcoded values in the rest of the package.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class GradConfig:
    """Configuration for a scalargrad network and its trainer."""

    # Network shape: input width, then one entry per layer (neurons per layer)
    input_shape: int = 3
    shape: list[int] = field(default_factory=lambda: [3, 3, 3])

    # Parameter initialisation: uniform in [-init_range, init_range]
    init_range: float = 1.0
    seed: Optional[int] = None  # None = unseeded

    # Optimizer
    learning_rate: float = 0.01

    # Graph rendering (graphviz renderer only)
    graph_format: str = "svg"
    graph_rank_dir: str = "LR"

    # Background trainer
    train_interval_seconds: float = 10.0
    train_max_steps: Optional[int] = None  # None = run until stopped

    def __post_init__(self):
        if self.input_shape < 1:
            raise ValueError(f"input_shape must be positive, got {self.input_shape}")
        if not self.shape:
            raise ValueError("shape must name at least one layer")
        if any(size < 1 for size in self.shape):
            raise ValueError(f"every layer needs at least one neuron, got {self.shape}")
        if self.learning_rate <= 0:
            raise ValueError(f"learning_rate must be positive, got {self.learning_rate}")
        if self.init_range <= 0:
            raise ValueError(f"init_range must be positive, got {self.init_range}")
        if self.train_interval_seconds < 0:
            raise ValueError("train_interval_seconds cannot be negative")
