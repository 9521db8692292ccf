"""
Built-in step observers.

LoggingObserver writes phase changes and step results to the log.
StatsObserver keeps counters and gauges that the server exposes on /stats.
Both are plain objects satisfying protocols.StepObserver.
"""

import logging
import threading
from collections import deque
from decimal import Decimal
from typing import Optional

logger = logging.getLogger("scalargrad.observers")


class LoggingObserver:
    """Log every phase change (DEBUG), step (INFO) and failure (WARNING)."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger

    def on_phase_change(self, network, old, new):
        self.log.debug(f"[Network] Phase {old.value} -> {new.value}")

    def on_step_complete(self, network, loss_value, elapsed):
        self.log.info(
            f"[Network] Step {network.steps}: loss={loss_value.data:.6f} "
            f"({elapsed * 1000:.1f}ms)"
        )

    def on_step_failed(self, network, error):
        self.log.warning(f"[Network] Step failed: {error}")


class StatsObserver:
    """
    In-process counters for one network.

    Tracks step/failure counts, the current phase, the last loss, step
    latency and a short loss history. snapshot() is safe to call from another
    thread.
    """

    def __init__(self, history: int = 100):
        self._lock = threading.Lock()
        self.steps_total = 0
        self.failures_total = 0
        self.failures_by_stage: dict[str, int] = {}
        self.phase = "static"
        self.last_loss: Optional[Decimal] = None
        self.last_latency: Optional[float] = None
        self._latency_sum = 0.0
        self.losses: deque = deque(maxlen=history)

    def on_phase_change(self, network, old, new):
        with self._lock:
            self.phase = new.value

    def on_step_complete(self, network, loss_value, elapsed):
        with self._lock:
            self.steps_total += 1
            self.last_loss = loss_value.data
            self.last_latency = elapsed
            self._latency_sum += elapsed
            self.losses.append(loss_value.data)

    def on_step_failed(self, network, error):
        stage = getattr(error, "stage", "unknown")
        with self._lock:
            self.failures_total += 1
            self.failures_by_stage[stage] = self.failures_by_stage.get(stage, 0) + 1

    def snapshot(self) -> dict:
        """JSON-friendly view. Decimals are rendered as strings."""
        with self._lock:
            mean_latency = (
                self._latency_sum / self.steps_total if self.steps_total else None
            )
            return {
                "steps_total": self.steps_total,
                "failures_total": self.failures_total,
                "failures_by_stage": dict(self.failures_by_stage),
                "phase": self.phase,
                "last_loss": str(self.last_loss) if self.last_loss is not None else None,
                "last_step_latency_ms": (
                    round(self.last_latency * 1000, 3) if self.last_latency is not None else None
                ),
                "mean_step_latency_ms": (
                    round(mean_latency * 1000, 3) if mean_latency is not None else None
                ),
                "recent_losses": [str(v) for v in self.losses],
            }
