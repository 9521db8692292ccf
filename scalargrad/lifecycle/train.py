"""
Train Job - run a bounded number of training steps on a sample set.

Cancellable between steps. A failed step is logged and skipped; the network
is left usable and the next step starts from STATIC.
"""

import logging
import random
from decimal import Decimal
from typing import Callable, Optional, Sequence

from scalargrad.core.autograd import Kind, Value
from scalargrad.errors import StepError

logger = logging.getLogger("scalargrad.lifecycle.train")


def random_values(rng: random.Random, size: int, label: str,
                  kind: Kind = Kind.INPUT) -> list[Value]:
    """`size` labelled leaves drawn uniformly from [-1, 1]."""
    return [
        Value(Decimal(repr(rng.uniform(-1.0, 1.0))), kind=kind, label=f"{label}_{i}")
        for i in range(size)
    ]


def run_train_job(
    network,
    samples: Sequence[tuple[Sequence, Sequence]],
    cancel_check: Callable[[], bool],
    max_steps: int = 50,
    rng: Optional[random.Random] = None,
    on_step: Optional[Callable[[Value], None]] = None,
) -> Optional[dict]:
    """
    Train network on random picks from samples.

    Args:
        network: NeuralNetwork to train
        samples: (inputs, expectation) pairs
        cancel_check: Polled before every step; True stops the job
        max_steps: Upper bound on attempted steps
        rng: Source for sample picks (default: unseeded)
        on_step: Called with the loss node after each successful step

    Returns:
        Training stats dict, or None if there were no samples.
    """
    if not samples:
        logger.info("[Train] No samples, skipping")
        return None

    rng = rng or random.Random()
    losses: list[Decimal] = []
    failures = 0

    for step in range(max_steps):
        if cancel_check():
            logger.debug(f"[Train] Cancelled after {step} steps")
            break

        inputs, expectation = rng.choice(samples)
        try:
            loss_value = network.step(inputs, expectation)
        except StepError as exc:
            failures += 1
            logger.warning(f"[Train] Step {step} failed in {exc.stage}: {exc.cause}")
            continue

        losses.append(loss_value.data)
        if on_step is not None:
            on_step(loss_value)

    stats = {
        "samples": len(samples),
        "steps": len(losses),
        "failures": failures,
        "initial_loss": losses[0] if losses else None,
        "final_loss": losses[-1] if losses else None,
        "loss_reduction": (losses[0] - losses[-1]) if len(losses) > 1 else Decimal(0),
    }

    if losses:
        logger.info(
            f"[Train] {len(losses)} steps on {len(samples)} samples, "
            f"loss {losses[0]:.6f} -> {losses[-1]:.6f}, {failures} failed"
        )
    else:
        logger.info(f"[Train] No successful steps ({failures} failed)")

    return stats
