"""
Structured logging for the Deal Workflow Engine.

structlog with two renderers (JSON for production, console for local work).
Every workflow operation runs inside logging_context(), which binds trace,
deal and actor ids for the duration of the call so nested engine logs carry
them without passing them around.

Event names follow {component}.{operation}.{outcome}, for example
workflow.stage_transition.applied or notifications.delivery_failed.
"""

import logging
import sys
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from types import MappingProxyType
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from .config import config

_EMPTY: Mapping[str, str] = MappingProxyType({})
_log_context: ContextVar[Mapping[str, str]] = ContextVar(
    'deal_workflow_log_context', default=_EMPTY
)


def current_context() -> Mapping[str, str]:
    """Read-only view of the ids bound by the innermost logging_context()."""
    return _log_context.get()


def get_trace_id() -> str | None:
    return current_context().get('trace_id')


def get_deal_id() -> str | None:
    return current_context().get('deal_id')


def get_actor() -> str | None:
    return current_context().get('actor')


def add_context_info(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Processor merging the bound ids into each entry. Explicit keys win."""
    for key, value in current_context().items():
        event_dict.setdefault(key, value)
    return event_dict


def configure_logging(
    json_output: bool | None = None,
    log_level: str | None = None,
) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        json_output: Render JSON lines instead of console output.
            Defaults to config.LOG_JSON.
        log_level: Level name, defaults to config.LOG_LEVEL
    """
    if json_output is None:
        json_output = config.LOG_JSON
    level = getattr(logging, (log_level or config.LOG_LEVEL).upper(), logging.INFO)

    logging.basicConfig(format='%(message)s', stream=sys.stdout, level=level)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_context_info,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt='iso', utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_output:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, typically get_logger(__name__)."""
    return structlog.get_logger(name)


@contextmanager
def logging_context(
    trace_id: str | None = None,
    deal_id: str | None = None,
    actor: str | None = None,
) -> Iterator[None]:
    """
    Bind ids to every log entry emitted inside the block.

    Values left as None inherit from the enclosing context; the previous
    context is restored on exit.

    Usage:
        with logging_context(deal_id=deal.id, actor='user_1'):
            logger.info('workflow.stage_transition.applied')
    """
    given = {'trace_id': trace_id, 'deal_id': deal_id, 'actor': actor}
    merged = {**current_context(), **{k: v for k, v in given.items() if v is not None}}
    token = _log_context.set(MappingProxyType(merged))
    try:
        yield
    finally:
        _log_context.reset(token)


class OperationTimer:
    """
    Millisecond timings for the steps of one workflow operation.

    Usage:
        timer = OperationTimer()
        with timer.step('load'):
            deal = await repository.load_deal(deal_id)
        logger.info('workflow.stage_transition.applied', **timer.summary())
    """

    def __init__(self):
        self.steps: dict[str, float] = {}
        self._started = time.perf_counter()

    @contextmanager
    def step(self, name: str) -> Iterator[None]:
        started = time.perf_counter()
        try:
            yield
        finally:
            self.steps[name] = (time.perf_counter() - started) * 1000

    @property
    def total_ms(self) -> float:
        return (time.perf_counter() - self._started) * 1000

    def summary(self) -> dict[str, Any]:
        return {
            'total_ms': round(self.total_ms, 2),
            'steps': {name: round(ms, 2) for name, ms in self.steps.items()},
        }


# Console output until the host application calls configure_logging()
configure_logging()
