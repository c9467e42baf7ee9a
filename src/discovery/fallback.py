"""Ordered strategy execution: the first strategy to produce a result wins.

Ranking, image resolution and trend prediction all try an AI-backed
strategy before a deterministic one. Each step is a :class:`Strategy`;
:func:`first_success` runs them in order, absorbing and logging failures.
Storage failures (:class:`Unavailable`) are never absorbed.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

from opentelemetry import trace

from src.discovery.errors import Unavailable
from src.shared.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Strategy(Generic[T]):
    name: str
    run: Callable[[], Awaitable[T | None]]


@dataclass(frozen=True)
class Outcome(Generic[T]):
    strategy: str
    value: T


async def first_success(
    strategies: Sequence[Strategy[T]],
    *,
    operation: str,
) -> Outcome[T] | None:
    """Run *strategies* in order and return the first non-``None`` result.

    A strategy that raises, or returns ``None``, hands over to the next one.
    Returns ``None`` when every strategy came up empty.
    """
    span = trace.get_current_span()
    for strategy in strategies:
        try:
            value = await strategy.run()
        except Unavailable:
            raise
        except Exception as exc:
            logger.warning(
                "%s: strategy '%s' failed, falling back", operation, strategy.name, exc_info=True,
            )
            span.record_exception(exc)
            span.add_event(f"{operation}.fallback", {"strategy": strategy.name, "error": str(exc)})
            continue

        if value is None:
            logger.debug("%s: strategy '%s' produced nothing", operation, strategy.name)
            continue

        span.set_attribute(f"{operation}.strategy", strategy.name)
        return Outcome(strategy=strategy.name, value=value)

    return None
