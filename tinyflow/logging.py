"""Scoped loggers for tasks and flows.

Every task and flow logs through a `logging.LoggerAdapter` that tags records with
the task name or flow id, both in the message prefix and as a structured field.
"""

import json as _json
import logging
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from .config import get_config

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import MutableMapping
    from typing import Any

TASK_LOGGER_NAME = "tinyflow.task"
FLOW_LOGGER_NAME = "tinyflow.flow"

_RESERVED_LOG_RECORD_ATTRS: frozenset[str] = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


class ScopedLogger(logging.LoggerAdapter):
    """Prefixes messages with a scope tag and merges per-call `extra` fields."""

    def __init__(self, logger: logging.Logger, kind: str, scope: str) -> None:
        super().__init__(logger, {kind: scope})
        self.prefix = f"[{kind.capitalize()}:{scope}]"

    def process(
        self, msg: "Any", kwargs: "MutableMapping[str, Any]"
    ) -> tuple[str, "MutableMapping[str, Any]"]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return f"{self.prefix} {msg}", kwargs


def get_task_logger(task_name: str) -> ScopedLogger:
    return ScopedLogger(logging.getLogger(TASK_LOGGER_NAME), "task", task_name)


def get_flow_logger(flow_id: str | None = None) -> ScopedLogger:
    return ScopedLogger(logging.getLogger(FLOW_LOGGER_NAME), "flow", flow_id or "default")


class JsonFormatter(logging.Formatter):
    """A minimal JSON formatter for logging records."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        payload: dict[str, "Any"] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_LOG_RECORD_ATTRS and not key.startswith("_")
        }
        if extra:
            payload["extra"] = extra

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return _json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: str | None = None, json: bool | None = None) -> None:
    """Attach a stdout handler to the `tinyflow` logger."""
    config = get_config()
    level = level or config.log_level
    json = config.log_json if json is None else json

    logger = logging.getLogger("tinyflow")

    # re-configuring replaces rather than duplicates the handler
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(
        JsonFormatter()
        if json
        else logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    )

    logger.addHandler(handler)
    logger.setLevel(level.upper())
