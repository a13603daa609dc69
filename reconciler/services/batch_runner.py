"""
Sequential batch runner shared by the tracking sync and payment reconciliation.

One item at a time, a fixed pause between items, no in-run retries. A failing item
is recorded and the batch moves on. Exceptions listed as fatal abort the run.
A 429 from an external API doubles the pause for the rest of the run.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Iterable, Optional, TypeVar

from reconciler.services.errors import ConfigurationError, RateLimitedError, ReconciliationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ItemOutcome(Generic[T]):
    key: str
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None


@dataclass
class BatchResult(Generic[T]):
    outcomes: list[ItemOutcome[T]] = field(default_factory=list)

    @property
    def succeeded(self) -> list[ItemOutcome[T]]:
        return [o for o in self.outcomes if o.ok]

    @property
    def failed(self) -> list[ItemOutcome[T]]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def errors(self) -> list[str]:
        return [f"{o.key}: {o.error}" for o in self.failed]


class BatchRunner:
    def __init__(
        self,
        delay_seconds: float = 0.5,
        max_delay_seconds: float = 8.0,
        fatal_exceptions: tuple[type[BaseException], ...] = (ConfigurationError,),
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.delay_seconds = delay_seconds
        self.max_delay_seconds = max(max_delay_seconds, delay_seconds)
        self.fatal_exceptions = fatal_exceptions
        self._sleep = sleep

    async def run(
        self,
        items: Iterable[Any],
        handler: Callable[[Any], Awaitable[T]],
        key: Callable[[Any], str] = str,
    ) -> BatchResult[T]:
        items = list(items)
        result: BatchResult[T] = BatchResult()
        delay = self.delay_seconds
        total = len(items)

        for index, item in enumerate(items):
            item_key = key(item)
            logger.debug("[%s/%s] %s", index + 1, total, item_key)
            try:
                value = await handler(item)
                result.outcomes.append(ItemOutcome(key=item_key, ok=True, value=value))
            except self.fatal_exceptions:
                raise
            except RateLimitedError as e:
                delay = min(max(delay * 2, 0.1), self.max_delay_seconds)
                logger.warning("%s: %s; pausing %.2fs between items from now on", item_key, e, delay)
                result.outcomes.append(ItemOutcome(key=item_key, ok=False, error=str(e)))
            except ReconciliationError as e:
                logger.warning("%s failed: %s", item_key, e)
                result.outcomes.append(ItemOutcome(key=item_key, ok=False, error=str(e)))
            except Exception as e:
                logger.exception("%s failed unexpectedly: %s", item_key, e)
                result.outcomes.append(ItemOutcome(key=item_key, ok=False, error=str(e) or type(e).__name__))

            if index < total - 1 and delay > 0:
                await self._sleep(delay)

        return result
