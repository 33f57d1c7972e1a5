"""Structured logging for collection loads.

Call sites keep using ``logging.getLogger(__name__)``.  :func:`configure_logging`
routes every stdlib record through structlog's ProcessorFormatter, so the
loaders' records come out as coloured console lines or JSON lines carrying
the same keys.

Each record is stamped with the load it belongs to:

- ``collection``: base location of the collection being loaded
- ``entity_type``: the entity set being loaded, when there is one
- ``trace_id`` / ``span_id``: the active load span (all zeros outside one)

The load keys live in ContextVars, so they follow the per-type and per-id
fan-out of ``asyncio.gather`` without being passed around.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token
from pathlib import Path

import structlog
from opentelemetry import trace

LOG_FILE_NAME = "itemdeck.log"

# Third-party loggers that log every request at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore")

_collection: ContextVar[str | None] = ContextVar("itemdeck_collection", default=None)
_entity_type: ContextVar[str | None] = ContextVar("itemdeck_entity_type", default=None)


# ---------------------------------------------------------------------------
# Load context
# ---------------------------------------------------------------------------


@contextmanager
def load_context(
    collection: str | None = None, entity_type: str | None = None
) -> Iterator[None]:
    """Stamp records logged inside the block with *collection* / *entity_type*.

    A key left as None keeps its outer value; both are restored on exit.
    """
    tokens: list[tuple[ContextVar[str | None], Token[str | None]]] = []
    if collection is not None:
        tokens.append((_collection, _collection.set(collection)))
    if entity_type is not None:
        tokens.append((_entity_type, _entity_type.set(entity_type)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def get_collection_context() -> str | None:
    return _collection.get()


def get_entity_type_context() -> str | None:
    return _entity_type.get()


# ---------------------------------------------------------------------------
# Processors
# ---------------------------------------------------------------------------


def add_load_context(
    logger: logging.Logger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: dict,
) -> dict:
    """Add ``collection`` always and ``entity_type`` while a set is loading."""
    event_dict.setdefault("collection", _collection.get())
    entity_type = _entity_type.get()
    if entity_type is not None:
        event_dict.setdefault("entity_type", entity_type)
    return event_dict


def add_otel_context(
    logger: logging.Logger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: dict,
) -> dict:
    # The invalid span outside a trace carries zero ids.
    ctx = trace.get_current_span().get_span_context()
    event_dict["trace_id"] = format(ctx.trace_id, "032x")
    event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def _pre_chain(timestamp_fmt: str) -> list[structlog.types.Processor]:
    return [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt=timestamp_fmt),
        add_load_context,
        add_otel_context,
        structlog.stdlib.ExtraAdder(),
    ]


def _formatted(
    handler: logging.Handler,
    renderer: structlog.types.Processor,
    pre_chain: list[structlog.types.Processor],
) -> logging.Handler:
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            foreign_pre_chain=pre_chain,
        )
    )
    return handler


def _parse_level(level: str) -> int:
    return logging.getLevelNamesMapping().get(level.upper(), logging.INFO)


# ---------------------------------------------------------------------------
# configure_logging()
# ---------------------------------------------------------------------------


def configure_logging(
    level: str = "INFO",
    fmt: str = "text",
    log_root: Path | None = None,
    collection: str | None = None,
) -> None:
    """Install the stderr handler (and optional JSON log file) on the root logger.

    Parameters
    ----------
    level:
        Root log level name; unknown names mean INFO.
    fmt:
        ``"text"`` for the console renderer, ``"json"`` for JSON lines.
    log_root:
        When set, ``{log_root}/itemdeck.log`` also receives every record at
        DEBUG and above as JSON, whatever *fmt* is.
    collection:
        Collection to stamp on records logged outside any load.

    Calling it again replaces the previous handlers.
    """
    if collection:
        _collection.set(collection)

    if fmt == "json":
        console_chain = _pre_chain("iso")
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        console_chain = _pre_chain("%H:%M:%S")
        renderer = structlog.dev.ConsoleRenderer()

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(_formatted(logging.StreamHandler(sys.stderr), renderer, console_chain))
    root.setLevel(_parse_level(level))

    if log_root is not None:
        log_dir = Path(log_root)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = _formatted(
            logging.FileHandler(log_dir / LOG_FILE_NAME),
            structlog.processors.JSONRenderer(),
            _pre_chain("iso"),
        )
        file_handler.setLevel(logging.DEBUG)
        root.addHandler(file_handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    # structlog.get_logger() callers share the same pre-chain and handlers.
    structlog.configure(
        processors=[*console_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
