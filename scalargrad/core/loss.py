"""Loss functions. Built only from Value operations so backward() reaches the network."""

import logging
from typing import Sequence

from scalargrad.core.autograd import Value
from scalargrad.errors import EmptyOutput, ShapeMismatch

logger = logging.getLogger(__name__)


def mean_squared_error(output: Sequence[Value], expectation: Sequence) -> Value:
    """
    1/N * sum((y - y_hat) ** 2).

    Args:
        output: Network predictions.
        expectation: Targets, as Values or plain numbers.

    Raises:
        EmptyOutput: output has no entries.
        ShapeMismatch: output and expectation differ in length.
    """
    if len(output) == 0:
        raise EmptyOutput("empty output")
    if len(output) != len(expectation):
        raise ShapeMismatch(len(output), len(expectation))

    summation = None
    for y, y_hat in zip(output, expectation):
        squared = (y - y_hat) ** 2
        summation = squared if summation is None else summation + squared

    divisor = Value(len(output), label="mse_divisor")
    return summation / divisor
