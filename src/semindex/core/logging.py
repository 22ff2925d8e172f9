"""structlog setup for semindex.

Events are rendered by stdlib handlers, one per configured output, so the
console and a log file can use different formats and levels. Every event
carries the id of the index pass or search call that emitted it.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from pathlib import Path
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog

if TYPE_CHECKING:
    from semindex.config.models import LoggingConfig, LogOutputConfig

_operation_id: ContextVar[str | None] = ContextVar("operation_id", default=None)

# Third-party loggers that are chatty at INFO (model downloads, onnx setup)
_QUIET_LOGGERS = ("fastembed", "huggingface_hub")


def get_operation_id() -> str | None:
    return _operation_id.get()


def set_operation_id(operation_id: str | None = None) -> str:
    """Start a new correlated operation; generates an id when none is given."""
    oid = operation_id or uuid4().hex[:12]
    _operation_id.set(oid)
    return oid


def _add_operation_id(
    _logger: structlog.types.WrappedLogger,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    oid = _operation_id.get()
    if oid is not None:
        event_dict["operation_id"] = oid
    return event_dict


def _level(name: str) -> int:
    return logging.getLevelNamesMapping().get(name.upper(), logging.INFO)


def _with_level(config: LoggingConfig, level: str) -> LoggingConfig:
    """Copy of ``config`` with the root and every output forced to ``level``."""
    outputs = [o.model_copy(update={"level": level}) for o in config.outputs]
    return config.model_copy(update={"level": level, "outputs": outputs})


def configure_logging(
    *,
    config: LoggingConfig | None = None,
    json_format: bool = False,
    level: str | None = None,
) -> None:
    """Install structlog processors and one stdlib handler per output.

    Args:
        config: Outputs and levels. Defaults to a single stderr output.
        json_format: Format of the default output when ``config`` is None.
        level: Overrides the root level and every output level (``-v``).

    Safe to call again; earlier handlers are closed and replaced.
    """
    from semindex.config.models import LoggingConfig, LogOutputConfig

    if config is None:
        config = LoggingConfig(
            outputs=[LogOutputConfig(format="json" if json_format else "console")]
        )
    if level is not None:
        config = _with_level(config, level)

    root_level = _level(config.level)
    shared: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", key="timestamp"),
        _add_operation_id,  # type: ignore[list-item]
    ]

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Loggers are created at import time; reconfiguring must reach them
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    root.setLevel(root_level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    for output in config.outputs:
        handler = _handler_for(output, shared)
        handler.setLevel(_level(output.level or config.level))
        root.addHandler(handler)


def _handler_for(
    output: LogOutputConfig, shared: list[structlog.types.Processor]
) -> logging.Handler:
    handler: logging.Handler
    if output.destination == "stdout":
        handler = logging.StreamHandler(sys.stdout)
    elif output.destination == "stderr":
        handler = logging.StreamHandler(sys.stderr)
    else:
        path = Path(output.destination)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, mode="a", encoding="utf-8")

    renderer: structlog.types.Processor
    if output.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        colors = output.destination == "stderr" and sys.stderr.isatty()
        renderer = structlog.dev.ConsoleRenderer(colors=colors, pad_event_to=0, pad_level=False)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=shared)
    )
    return handler
