"""Server configuration via environment variables."""

from typing import Optional

from pydantic_settings import BaseSettings

from scalargrad.utils import parse_int_list


class Settings(BaseSettings):
    """scalargrad-server configuration. All values from env vars or .env file."""

    # Server
    host: str = "127.0.0.1"
    port: int = 8080
    log_level: str = "info"

    # Auth
    api_key: str = ""  # required for POST /v1/network/step; empty = open

    # Network
    input_shape: int = 3
    shape: str = "3,3,3"  # comma-separated neurons per layer
    learning_rate: float = 0.01
    init_range: float = 1.0
    seed: Optional[int] = None

    # Rendering: "graphviz" (needs the dot binary) or "memory" (JSON)
    renderer: str = "graphviz"
    graph_format: str = "svg"
    graph_rank_dir: str = "LR"

    # Background training on random inputs (0 = disabled)
    train_interval_seconds: float = 0.0
    train_max_steps: Optional[int] = None

    model_config = {"env_prefix": "SCALARGRAD_", "env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def shape_list(self) -> list[int]:
        return parse_int_list(self.shape)


# Singleton: import this everywhere instead of creating new Settings()
settings = Settings()
