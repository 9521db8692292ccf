"""
Training phase controller.

A NeuralNetwork owns one MLP, an optimizer and a loss, and drives a training
step as an explicit state machine:

    STATIC -> FORWARD -> BACKWARD -> OPTIMIZE -> STATIC

step() is the supported entry point. The individual stages are public so they
can be driven (and tested) one at a time; calling them out of order raises
InvalidPhaseTransition and changes nothing, as does calling one while another
thread is inside step().
"""

import logging
import random
import threading
import time
from contextlib import contextmanager
from enum import Enum
from typing import Iterable, Optional, Sequence

from scalargrad.config import GradConfig
from scalargrad.core.autograd import Value, backward
from scalargrad.core.loss import mean_squared_error
from scalargrad.core.nn import MLP, as_values
from scalargrad.core.optimizer import SGD
from scalargrad.errors import GradError, InvalidPhaseTransition, StepError
from scalargrad.protocols import LossFunction, Optimizer, StepObserver

logger = logging.getLogger(__name__)


class Phase(Enum):
    STATIC = "static"
    FORWARD = "forward"
    BACKWARD = "backward"
    OPTIMIZE = "optimize"


_ALLOWED = {
    Phase.STATIC: Phase.FORWARD,
    Phase.FORWARD: Phase.BACKWARD,
    Phase.BACKWARD: Phase.OPTIMIZE,
    Phase.OPTIMIZE: Phase.STATIC,
}


class NeuralNetwork:
    """MLP plus the state machine that trains it one step at a time."""

    def __init__(
        self,
        config: Optional[GradConfig] = None,
        optimizer: Optional[Optimizer] = None,
        loss: Optional[LossFunction] = None,
        observers: Iterable[StepObserver] = (),
        name: str = "",
    ):
        self.config = config or GradConfig()
        self.name = name
        rng = random.Random(self.config.seed)
        self.mlp = MLP(
            self.config.input_shape,
            self.config.shape,
            rng=rng,
            init_range=self.config.init_range,
            network=name,
        )
        self.optimizer = optimizer if optimizer is not None else SGD(self.config.learning_rate)
        self.loss = loss if loss is not None else mean_squared_error
        self._observers: list[StepObserver] = list(observers)

        self._phase = Phase.STATIC
        self._output: Optional[list[Value]] = None
        self._parameters = self.mlp.parameters()
        self._step_lock = threading.Lock()
        self.steps = 0

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def output(self) -> Optional[list[Value]]:
        """Output of the most recent forward(), until the step completes."""
        return self._output

    @property
    def input_shape(self) -> int:
        return self.mlp.n_inputs

    @property
    def output_shape(self) -> int:
        return self.mlp.n_outputs

    @property
    def layers(self) -> int:
        return len(self.mlp.layers)

    @property
    def shape(self) -> list[int]:
        return [layer.n_outputs for layer in self.mlp.layers]

    def parameters(self) -> list[Value]:
        """Every weight and bias, in a fixed order. Returns a fresh list."""
        return list(self._parameters)

    def add_observer(self, observer: StepObserver) -> None:
        self._observers.append(observer)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def forward(self, inputs: Sequence) -> list[Value]:
        """Evaluate the MLP on inputs and cache the result. STATIC -> FORWARD."""
        with self._exclusive(Phase.FORWARD):
            return self._forward(inputs)

    def compute_loss(self, expectation: Sequence) -> Value:
        """Loss of the cached output against expectation. Phase is unchanged."""
        with self._exclusive(Phase.BACKWARD):
            return self._compute_loss(expectation)

    def backward(self, loss_value: Value) -> None:
        """Populate every gradient under loss_value. FORWARD -> BACKWARD."""
        with self._exclusive(Phase.BACKWARD):
            self._backward(loss_value)

    def optimize(self) -> None:
        """Apply the optimizer and zero gradients. BACKWARD -> OPTIMIZE -> STATIC."""
        with self._exclusive(Phase.OPTIMIZE):
            self._optimize()

    def reset(self) -> None:
        """Abandon a partial step and return to STATIC. Parameters keep their data."""
        with self._exclusive(Phase.STATIC):
            self._reset()

    def _forward(self, inputs: Sequence) -> list[Value]:
        self._require(Phase.FORWARD)
        values = as_values(inputs)
        for p in self._parameters:
            p.zero_grad()
        output = self.mlp.forward(values)
        self._output = output
        self._transition(Phase.FORWARD)
        return output

    def _compute_loss(self, expectation: Sequence) -> Value:
        if self._phase is not Phase.FORWARD or self._output is None:
            raise InvalidPhaseTransition(self._phase, Phase.BACKWARD, "no forward output to score")
        loss_value = self.loss(self._output, expectation)
        if not isinstance(loss_value, Value):
            raise TypeError(f"loss returned {type(loss_value).__name__}, not Value")
        return loss_value

    def _backward(self, loss_value: Value) -> None:
        self._require(Phase.BACKWARD)
        backward(loss_value)
        self._transition(Phase.BACKWARD)

    def _optimize(self) -> None:
        self._require(Phase.OPTIMIZE)
        self._transition(Phase.OPTIMIZE)
        self.optimizer(self.parameters())
        for p in self._parameters:
            p.zero_grad()
        self._output = None
        self._transition(Phase.STATIC)

    def _reset(self) -> None:
        for p in self._parameters:
            p.zero_grad()
        self._output = None
        if self._phase is not Phase.STATIC:
            self._transition(Phase.STATIC)

    # ------------------------------------------------------------------
    # Step
    # ------------------------------------------------------------------

    def step(self, inputs: Sequence, expectation: Sequence) -> Value:
        """
        Run forward -> loss -> backward -> optimize as one unit.

        Returns:
            The loss node (its graph stays intact for rendering).

        Raises:
            InvalidPhaseTransition: another step is running on this network.
            StepError: a stage failed; `stage` says which. The phase is left
                at the last sub-state entered and parameters are only touched
                if the failure came from the optimizer itself.
        """
        with self._exclusive(Phase.FORWARD):
            if self._phase is not Phase.STATIC:
                logger.warning(
                    "[Network] Previous step stopped in %s, resetting", self._phase.value
                )
                self._reset()

            start = time.perf_counter()
            stage = "forward"
            try:
                self._forward(inputs)
                stage = "loss"
                loss_value = self._compute_loss(expectation)
                stage = "backward"
                self._backward(loss_value)
                stage = "optimize"
                self._optimize()
            except (GradError, ArithmeticError, TypeError, ValueError) as exc:
                error = StepError(stage, exc)
                self._notify("on_step_failed", error)
                raise error from exc

            self.steps += 1
            self._notify("on_step_complete", loss_value, time.perf_counter() - start)
            return loss_value

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _exclusive(self, requested: Phase):
        """Hold the step lock for one stage or step; never waits for another holder."""
        if not self._step_lock.acquire(blocking=False):
            raise InvalidPhaseTransition(self._phase, requested, "a step is already running")
        try:
            yield
        finally:
            self._step_lock.release()

    def _require(self, requested: Phase) -> None:
        if _ALLOWED[self._phase] is not requested:
            raise InvalidPhaseTransition(self._phase, requested)

    def _transition(self, new: Phase) -> None:
        old = self._phase
        self._phase = new
        self._notify("on_phase_change", old, new)

    def _notify(self, hook: str, *args) -> None:
        for observer in self._observers:
            try:
                getattr(observer, hook)(self, *args)
            except Exception:
                logger.warning(f"[Network] Observer {hook} failed", exc_info=True)

    def __repr__(self) -> str:
        return (
            f"NeuralNetwork(input_shape={self.input_shape}, shape={self.shape}, "
            f"phase={self._phase.value})"
        )
