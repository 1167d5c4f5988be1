"""Structured logging for the price alert core (structlog over stdlib logging).

Context propagation uses structlog.contextvars so that every log line
emitted during one evaluation cycle carries the same cycle_id, including
lines from concurrently running notification sends.
"""

import logging
import os

import structlog

# Third-party loggers that are chatty at INFO and would drown cycle logs.
_NOISY_LOGGERS = ("httpx", "httpcore", "ccxt", "aiosqlite", "uvicorn.access")

_PRE_CHAIN: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
]


def _pick_renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=False)


def setup_logging(log_level: str = "INFO", log_format: str | None = None) -> None:
    """Route structlog and stdlib records through one root handler.

    ``log_format`` falls back to the LOG_FORMAT environment variable:
    "json" for production, anything else renders for a console.
    """
    log_format = (log_format or os.environ.get("LOG_FORMAT", "console")).lower()
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        processors=[*_PRE_CHAIN, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_PRE_CHAIN,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _pick_renderer(log_format),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_cycle(cycle_id: str) -> None:
    """Attach an evaluation cycle id to all subsequent log lines in this context."""
    structlog.contextvars.bind_contextvars(cycle_id=cycle_id)


def unbind_cycle() -> None:
    structlog.contextvars.unbind_contextvars("cycle_id")
