"""
Training Worker - background training on random inputs.

Runs one step immediately, then one every `interval` seconds, against a fixed
random expectation, and publishes each step's graph. Stops promptly when
asked; a step in progress always runs to completion.
"""

import logging
import random
import threading
from typing import Callable, Optional

from scalargrad.core.autograd import Kind, Value
from scalargrad.core.nn import as_values
from scalargrad.errors import GradError, InvalidPhaseTransition, StepError
from scalargrad.lifecycle.train import random_values

logger = logging.getLogger("scalargrad.lifecycle")


class TrainingWorker:
    """Background thread stepping one network. Stop with stop()."""

    def __init__(
        self,
        network,
        interval: float = 10.0,
        publish: Optional[Callable[[Value], object]] = None,
        max_steps: Optional[int] = None,
        seed: Optional[int] = None,
    ):
        self.network = network
        self.interval = interval
        self.publish = publish
        self.max_steps = max_steps
        self._rng = random.Random(seed)
        self._thread: Optional[threading.Thread] = None
        self._stopped = threading.Event()
        self._lock = threading.Lock()
        self.steps = 0
        self.failures = 0
        self.last_loss: Optional[Value] = None
        self.expectation = random_values(
            self._rng, network.output_shape, "y", kind=Kind.VALUE
        )

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            self._stopped.clear()
            self._thread = threading.Thread(target=self._run, daemon=True, name="training-worker")
            self._thread.start()
        logger.info(f"[Worker] Started (interval={self.interval}s)")

    def stop(self, timeout: float = 2.0) -> None:
        self._stopped.set()
        thread = self._thread
        if thread and thread.is_alive():
            thread.join(timeout=timeout)
        logger.info("[Worker] Stopped")

    def is_cancelled(self) -> bool:
        return self._stopped.is_set()

    def run_once(self) -> Optional[Value]:
        """One step on fresh random inputs. Returns the loss node, or None on failure."""
        inputs = random_values(self._rng, self.network.input_shape, "x")
        logger.debug(f"[Worker] Step {self.steps} input={[float(v) for v in inputs]}")

        try:
            loss_value = self.network.step(inputs, self._fresh_expectation())
        except StepError as exc:
            self.failures += 1
            logger.error(f"[Worker] Step failed in {exc.stage}: {exc.cause}")
            return None
        except InvalidPhaseTransition:
            logger.warning("[Worker] Another step is running, skipping this tick")
            return None

        self.steps += 1
        self.last_loss = loss_value

        if self.publish is not None:
            try:
                self.publish(loss_value)
            except GradError:
                logger.error("[Worker] Failed to publish graph", exc_info=True)

        logger.info(f"[Worker] Step {self.steps}: loss={loss_value.data:.6f}")
        return loss_value

    def _fresh_expectation(self) -> list[Value]:
        # New leaves each step so backward never accumulates onto the stored targets.
        return as_values([v.data for v in self.expectation], kind=Kind.VALUE, label="y")

    def _run(self) -> None:
        delay = 0.0
        while not self._stopped.wait(delay):
            delay = self.interval
            self.run_once()
            if self.max_steps is not None and self.steps >= self.max_steps:
                logger.info(f"[Worker] Reached {self.max_steps} steps")
                break
