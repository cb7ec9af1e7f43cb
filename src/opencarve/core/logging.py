"""
Structured logging for opencarve.

Every conversion logs through structlog so a single request can be followed
across the classifier, geometry stages, simulator and code generators. The
pipeline binds a ``conversion`` context (file name, output format) with
:func:`conversion_context`; everything logged inside that block carries it.

Usage::

    from opencarve.core.logging import configure_logging, get_logger

    configure_logging(json_output=True)
    logger = get_logger(__name__)
    logger.info("gcode_generated", operations=2, lines=418)
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import structlog


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """
    Configure stdlib logging and structlog together.

    Args:
        level: Minimum log level name.
        json_output: Render JSON lines instead of the colored dev console.
        log_file: Also write records to this file.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
        handlers=handlers,
        force=True,
    )

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer: structlog.types.Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    # Records from plain ``logging.getLogger`` loggers go through the same
    # pre-chain so numeric modules and the pipeline render identically.
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    for handler in logging.root.handlers:
        handler.setFormatter(formatter)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger named after the calling module."""
    return structlog.get_logger(name)


@contextmanager
def conversion_context(**values: Any) -> Iterator[None]:
    """
    Bind key/value pairs to every log record emitted inside the block.

    Previously bound keys are restored on exit, so nested conversions
    (e.g. the CLI converting several files) do not leak context.
    """
    tokens = structlog.contextvars.bind_contextvars(**values)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)
