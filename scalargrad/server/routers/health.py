"""Health and stats endpoints."""

import logging

from fastapi import APIRouter

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
def health():
    """Health check: network initialized."""
    import scalargrad

    try:
        network = scalargrad.get_network()
    except RuntimeError:
        logger.exception("Health check failed")
        return {"status": "unhealthy"}
    return {"status": "healthy", "phase": network.phase.value}


@router.get("/stats")
def stats():
    """Step counters, failures by stage, latency and recent losses."""
    import scalargrad

    network = scalargrad.get_network()
    snapshot = scalargrad.get_stats().snapshot()
    snapshot["parameters"] = len(network.parameters())
    snapshot["learning_rate"] = str(getattr(network.optimizer, "learning_rate", "")) or None
    return snapshot
