"""Network endpoints: shape, parameters, and running a training step."""

import logging
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from scalargrad.server.auth import require_step_key

router = APIRouter()
logger = logging.getLogger(__name__)

MAX_VECTOR_LEN = 1000


# --- Request models ---

class StepRequest(BaseModel):
    input: list[Decimal] = Field(..., min_length=1, max_length=MAX_VECTOR_LEN)
    expectation: list[Decimal] = Field(..., min_length=1, max_length=MAX_VECTOR_LEN)


# --- Endpoints ---

@router.get("")
def describe():
    """Shape, phase and training progress."""
    import scalargrad

    network = scalargrad.get_network()
    return {
        "input_shape": network.input_shape,
        "output_shape": network.output_shape,
        "shape": network.shape,
        "layers": network.layers,
        "parameters": len(network.parameters()),
        "phase": network.phase.value,
        "steps": network.steps,
        "learning_rate": str(getattr(network.optimizer, "learning_rate", "")) or None,
    }


@router.get("/parameters")
def parameters():
    """Every weight and bias in optimizer order."""
    import scalargrad

    network = scalargrad.get_network()
    out = []
    for p in network.parameters():
        ctx = p.context
        out.append({
            "id": p.id,
            "kind": p.kind.value,
            "label": p.label,
            "layer": ctx.layer if ctx else -1,
            "neuron": ctx.neuron if ctx else "",
            "data": str(p.data),
        })
    return {"parameters": out, "count": len(out)}


@router.post("/step", dependencies=[Depends(require_step_key)])
def step(req: StepRequest):
    """Run one training step and publish its graph."""
    import scalargrad
    from scalargrad.errors import GradError, InvalidPhaseTransition, StepError

    network = scalargrad.get_network()
    try:
        loss_value = network.step(req.input, req.expectation)
    except StepError as exc:
        raise HTTPException(
            status_code=422,
            detail={"stage": exc.stage, "error": str(exc.cause)},
        )
    except InvalidPhaseTransition as exc:
        raise HTTPException(status_code=409, detail=str(exc))

    published = False
    if scalargrad.get_grapher() is not None:
        try:
            scalargrad.publish_graph(loss_value)
            published = True
        except GradError:
            logger.exception("Failed to publish graph for step %d", network.steps)

    return {
        "loss": str(loss_value.data),
        "step": network.steps,
        "phase": network.phase.value,
        "graph_published": published,
    }
