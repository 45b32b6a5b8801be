# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""structlog + stdlib bridge for the pageeval CLI.

Leaf module — no pageeval imports. Library modules log through stdlib
loggers under the ``pageeval`` namespace; the evaluator binds
``invocation_id`` into structlog contextvars so every line of one run
can be correlated once this bridge is installed. Lines forwarded from
the page itself (console output, uncaught errors) carry ``origin="page"``.
"""

from __future__ import annotations

import logging
import sys

import structlog
from structlog.typing import EventDict, Processor, WrappedLogger

PACKAGE_LOGGER = "pageeval"

# Record attributes passed via ``extra=`` that are promoted into the event
_FORWARDED_EXTRAS = ("origin",)

# Third-party loggers that are noisy at DEBUG and never useful for script debugging
_QUIET_LOGGERS = ("asyncio",)


def _short_logger_name(_logger: WrappedLogger, _name: str, event_dict: EventDict) -> EventDict:
    """``pageeval.preparation`` → ``preparation``; foreign names are left alone."""
    name = event_dict.get("logger")
    if isinstance(name, str) and name.startswith(PACKAGE_LOGGER + "."):
        event_dict["logger"] = name[len(PACKAGE_LOGGER) + 1 :]
    return event_dict


def _pre_chain() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        _short_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.ExtraAdder(allow=_FORWARDED_EXTRAS),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def configure(*, json_output: bool = False, verbose: bool = False) -> None:
    """Route stdlib logging through structlog's ProcessorFormatter on stderr.

    Args:
        json_output: Emit JSON lines instead of the console renderer
            (coloured only when stderr is a terminal).
        verbose: DEBUG level for the ``pageeval`` loggers (browser console
            messages included); INFO otherwise. Everything else stays at
            WARNING.
    """
    pre_chain = _pre_chain()
    if json_output:
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            foreign_pre_chain=pre_chain,
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.WARNING)

    logging.getLogger(PACKAGE_LOGGER).setLevel(logging.DEBUG if verbose else logging.INFO)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
