"""Graph endpoint: the most recently published computation graph."""

import logging

from fastapi import APIRouter, HTTPException, Response

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("")
def get_graph():
    """Render the latest graph with the configured grapher."""
    import scalargrad
    from scalargrad.errors import GraphNotInitialized

    grapher = scalargrad.get_grapher()
    if grapher is None:
        raise HTTPException(status_code=404, detail="No grapher configured")

    try:
        content = grapher.render()
    except GraphNotInitialized:
        raise HTTPException(status_code=404, detail="No graph published yet")
    except (RuntimeError, OSError):
        # graphviz raises ExecutableNotFound (a RuntimeError) without `dot`
        logger.exception("Graph rendering failed")
        raise HTTPException(status_code=503, detail="Graph renderer unavailable")

    media_type = getattr(grapher, "media_type", "application/octet-stream")
    return Response(content=content, media_type=media_type)
