# price_engine/services/concurrency.py

"""Bounded, failure-isolated fan-out for collaborator calls."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable, Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from price_engine.config.settings import Settings

logger = logging.getLogger("price_engine.concurrency")

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")


@dataclass
class GatherOutcome(Generic[K, T]):
    """Settled results of :func:`gather_in_chunks`, keyed by input item."""

    results: dict[K, T] = field(default_factory=lambda: {})
    errors: dict[K, BaseException] = field(default_factory=lambda: {})
    timed_out: list[K] = field(default_factory=lambda: [])

    @property
    def partial(self) -> bool:
        return bool(self.timed_out)


async def gather_in_chunks(
    items: Sequence[K],
    worker: Callable[[K], Awaitable[T]],
    *,
    chunk_size: int = Settings.MAX_CONCURRENT_FETCHES,
    timeout: float | None = None,
) -> GatherOutcome[K, T]:
    """Run *worker* over *items*, at most *chunk_size* at a time.

    Each chunk is awaited in full before the next starts.  A failing
    item is recorded in ``errors`` without affecting the others.  When
    *timeout* (seconds, whole call) elapses, unfinished calls are
    cancelled and they and any unstarted items land in ``timed_out``.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout if timeout is not None else None
    outcome: GatherOutcome[K, T] = GatherOutcome()

    for start in range(0, len(items), chunk_size):
        chunk = items[start:start + chunk_size]
        remaining = None
        if deadline is not None:
            remaining = deadline - loop.time()
            if remaining <= 0:
                outcome.timed_out.extend(items[start:])
                break

        tasks = {
            asyncio.ensure_future(worker(item)): item for item in chunk
        }
        _, pending = await asyncio.wait(tasks, timeout=remaining)

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        for task, item in tasks.items():
            if task in pending:
                outcome.timed_out.append(item)
            elif task.exception() is not None:
                outcome.errors[item] = task.exception()  # type: ignore[assignment]
            else:
                outcome.results[item] = task.result()

        if pending:
            outcome.timed_out.extend(items[start + chunk_size:])
            break

    if outcome.timed_out:
        logger.warning(
            "Fan-out timed out after %.1fs; %d of %d items unfinished",
            timeout or 0.0,
            len(outcome.timed_out),
            len(items),
        )
    return outcome
