"""scalargrad-server: HTTP front end for training a network and viewing its graph."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from scalargrad.server.config import settings

logger = logging.getLogger("scalargrad_server")

_worker = None


def _init_scalargrad():
    """Initialize scalargrad from server settings."""
    import scalargrad
    from scalargrad.config import GradConfig

    config = GradConfig(
        input_shape=settings.input_shape,
        shape=settings.shape_list,
        learning_rate=settings.learning_rate,
        init_range=settings.init_range,
        seed=settings.seed,
        graph_format=settings.graph_format,
        graph_rank_dir=settings.graph_rank_dir,
        train_interval_seconds=settings.train_interval_seconds,
        train_max_steps=settings.train_max_steps,
    )

    network = scalargrad.init(config, grapher=settings.renderer)
    logger.info(
        "scalargrad initialized: input_shape=%d, shape=%s, renderer=%s",
        network.input_shape, network.shape, settings.renderer,
    )


def _start_worker() -> Optional[object]:
    """Start background training if an interval is configured."""
    if settings.train_interval_seconds <= 0:
        return None

    import scalargrad
    from scalargrad.lifecycle.worker import TrainingWorker

    config = scalargrad.get_config()
    worker = TrainingWorker(
        scalargrad.get_network(),
        interval=config.train_interval_seconds,
        publish=scalargrad.publish_graph,
        max_steps=config.train_max_steps,
        seed=config.seed,
    )
    worker.start()
    return worker


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _worker
    _init_scalargrad()
    _worker = _start_worker()
    logger.info("scalargrad-server ready on %s:%d", settings.host, settings.port)
    yield
    if _worker is not None:
        _worker.stop()
        _worker = None
    logger.info("scalargrad-server shutting down")


app = FastAPI(
    title="scalargrad-server",
    description="Train a scalar autodiff MLP and view its computation graph",
    version="0.1.0",
    lifespan=lifespan,
)


# --- Register routers ---

from scalargrad.server.routers import graph, health, network  # noqa: E402

# Reads are open; POST /v1/network/step carries its own key check
app.include_router(network.router, prefix="/v1/network", tags=["network"])
app.include_router(graph.router, prefix="/v1/graph", tags=["graph"])
app.include_router(health.router, prefix="/v1", tags=["health"])


def run():
    """Entry point for `scalargrad-server` CLI command."""
    import uvicorn

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    uvicorn.run(
        "scalargrad.server.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    run()
