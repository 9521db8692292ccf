"""Optimizers: in-place parameter updates from accumulated gradients."""

import logging
from decimal import Decimal
from typing import Sequence

from scalargrad.core.autograd import Value
from scalargrad.utils import to_decimal

logger = logging.getLogger(__name__)

DEFAULT_LEARNING_RATE = Decimal("0.01")


class SGD:
    """Fixed-rate gradient descent: data += -learning_rate * grad."""

    def __init__(self, learning_rate=DEFAULT_LEARNING_RATE):
        self.learning_rate = to_decimal(learning_rate)
        if self.learning_rate <= 0:
            raise ValueError(f"learning_rate must be positive, got {learning_rate}")

    def __call__(self, parameters: Sequence[Value]) -> None:
        params = list(parameters)

        # Validate everything first so a bad parameter never leaves a half-applied update.
        for i, p in enumerate(params):
            if not isinstance(p, Value):
                raise TypeError(f"parameter {i} is {type(p).__name__}, not Value")
            if not p.is_leaf:
                raise ValueError(f"parameter {i} (node {p.id}) is not a leaf")
            if not p.grad.is_finite():
                raise ArithmeticError(f"parameter {i} (node {p.id}) has non-finite grad {p.grad}")

        step = -self.learning_rate
        for p in params:
            p.data = p.data + step * p.grad

        logger.debug("[SGD] Updated %d parameters (lr=%s)", len(params), self.learning_rate)

    def __repr__(self) -> str:
        return f"SGD(learning_rate={self.learning_rate})"
