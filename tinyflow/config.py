from functools import lru_cache
from typing import Annotated

from annotated_types import Ge
from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    log_level: str = "INFO"
    """Level applied to the `tinyflow` logger by `configure_logging`."""

    log_json: bool = False
    """Emit one JSON object per log record instead of plain text."""

    flow_max_steps: Annotated[int, Ge(1)] | None = None
    """ Default cap on tasks run by a single `Flow.execute` call. Unbounded if unset."""

    model_config = SettingsConfigDict(env_prefix="TINYFLOW_", extra="ignore")


@lru_cache(maxsize=1)
def get_config() -> Config:
    return Config()
