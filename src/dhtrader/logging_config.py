"""Structured logging: console, rotating JSON app log and a separate trade log.

Every event of a run carries the pool and manager it acts on once
``bind_run_context`` has been called, so trade log lines can be matched to
transactions without the surrounding app log.
"""

import logging
import logging.handlers
import sys
from pathlib import Path

import structlog

from dhtrader.config import LoggingConfig

TRADE_LOGGER = "dhtrader.trades"


def _rotating_handler(path: str, config: LoggingConfig, formatter: logging.Formatter) -> logging.Handler:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=config.max_bytes,
        backupCount=config.backup_count,
    )
    handler.setFormatter(formatter)
    return handler


def configure_logging(config: LoggingConfig) -> None:
    """Route structlog through stdlib logging to the console and both log files."""
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    json_formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.processors.JSONRenderer(),
        foreign_pre_chain=shared_processors,
    )
    console_formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        foreign_pre_chain=shared_processors,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.level.upper()))
    root_logger.handlers.clear()

    # aiohttp logs connection pool churn at DEBUG; rpc.flush covers each round trip
    logging.getLogger("aiohttp").setLevel(logging.WARNING)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)
    root_logger.addHandler(_rotating_handler(config.app_log, config, json_formatter))

    # Trade events also reach the console and app log through the root logger
    trade_logger = logging.getLogger(TRADE_LOGGER)
    trade_logger.handlers.clear()
    trade_logger.addHandler(_rotating_handler(config.trade_log, config, json_formatter))
    trade_logger.propagate = True


def bind_run_context(pool: str, manager: str) -> None:
    """Attach the pool and manager account to every following event."""
    structlog.contextvars.bind_contextvars(pool=pool, manager=manager)


def clear_run_context() -> None:
    structlog.contextvars.unbind_contextvars("pool", "manager")


def get_trade_logger() -> structlog.stdlib.BoundLogger:
    """Logger whose events are also written to the trade log."""
    return structlog.get_logger(TRADE_LOGGER)
