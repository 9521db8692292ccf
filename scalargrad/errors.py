"""
Error taxonomy for scalargrad.

Every core operation raises one of these instead of aborting the process.
Most also subclass the closest builtin so callers can catch them generically.
"""


class GradError(Exception):
    """Base class for all scalargrad errors."""


class DimensionMismatch(GradError, ValueError):
    """A neuron received the wrong number of inputs."""

    def __init__(self, got: int, expected: int):
        super().__init__(f"invalid dim of inputs: got {got}, expected {expected}")
        self.got = got
        self.expected = expected


class ShapeMismatch(GradError, ValueError):
    """Loss output and expectation have different lengths."""

    def __init__(self, output: int, expectation: int):
        super().__init__(f"expected shape {output}, got {expectation}")
        self.output = output
        self.expectation = expectation


class EmptyOutput(GradError, ValueError):
    """Loss was asked to reduce an empty output vector."""


class DivisionByZero(GradError, ZeroDivisionError):
    """Division (or negative power) of zero."""


class InvalidPhaseTransition(GradError, RuntimeError):
    """The training state machine was driven out of order."""

    def __init__(self, current, requested, reason: str = ""):
        msg = f"cannot move from {current.value} to {requested.value}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)
        self.current = current
        self.requested = requested


class GraphNotInitialized(GradError, RuntimeError):
    """No grapher was supplied, or nothing has been drawn yet."""


class GraphError(GradError):
    """A grapher rejected a node or edge."""


class StepError(GradError):
    """A training step failed. `stage` names the part that failed."""

    def __init__(self, stage: str, cause: Exception):
        super().__init__(f"step failed during {stage}: {cause}")
        self.stage = stage
        self.cause = cause
