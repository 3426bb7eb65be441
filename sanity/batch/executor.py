"""Batch executor: bounded fan-out of independent async work items.

Items are partitioned into fixed-size groups. The items of a group run
concurrently; the next group starts only after the whole group finished.
A failing item never aborts the batch: it is logged and contributes the
executor's ``default`` result instead.

Example::

    executor = BatchExecutor(concurrency=5)
    result = await executor.run(connectors, fetch_components, default=[])
    result.results     # one entry per input item, in input order
    result.failures    # [BatchFailure(index, item, error), ...]
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_CONCURRENCY = 5


@dataclass
class BatchProgress:
    """Snapshot passed to the progress callback after every finished item."""

    completed: int
    total: int
    current: str
    succeeded: bool


@dataclass
class BatchFailure(Generic[T]):
    index: int
    item: T
    error: str


@dataclass
class BatchResult(Generic[T, R]):
    """Per-item outcome of a batch run, in input order."""

    total: int
    results: list[R | None] = field(default_factory=list)
    completed: list[bool] = field(default_factory=list)
    failures: list[BatchFailure[T]] = field(default_factory=list)
    cancelled: bool = False

    @property
    def succeeded(self) -> int:
        return sum(1 for done in self.completed if done) - len(self.failures)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def finished(self) -> int:
        return sum(1 for done in self.completed if done)


ProgressCallback = Callable[[BatchProgress], None]


class BatchExecutor:
    """Group-by-group fan-out with progress reporting.

    Parameters
    ----------
    concurrency : int
        Size of each group, i.e. the maximum number of in-flight items.
    """

    def __init__(self, concurrency: int = DEFAULT_CONCURRENCY) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.concurrency = concurrency

    async def run(
        self,
        items: Sequence[T],
        operation: Callable[[T], Awaitable[R]],
        *,
        default: Any = None,
        on_progress: ProgressCallback | None = None,
        describe: Callable[[T], str] = str,
        cancel_event: asyncio.Event | None = None,
    ) -> BatchResult[T, R]:
        """Run ``operation`` over ``items``.

        Args:
            items: Independent work items.
            operation: Async callable applied to each item.
            default: Result recorded for items that fail.
            on_progress: Called after every item, success or failure, with
                a monotonically increasing ``completed`` count.
            describe: Label of an item for progress and log messages.
            cancel_event: When set, in-flight items of the current group are
                cancelled and no further group starts. Items finished
                before that are kept in the result.
        """
        total = len(items)
        result: BatchResult[T, R] = BatchResult(
            total=total,
            results=[default] * total,
            completed=[False] * total,
        )
        counter = {"completed": 0}

        async def run_one(index: int, item: T) -> None:
            ok = True
            try:
                result.results[index] = await operation(item)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                ok = False
                result.results[index] = default
                result.failures.append(BatchFailure(index, item, str(exc) or type(exc).__name__))
                logger.warning("Batch item %s failed: %s", describe(item), exc)
            result.completed[index] = True
            counter["completed"] += 1
            if on_progress is not None:
                on_progress(BatchProgress(counter["completed"], total, describe(item), ok))

        for start in range(0, total, self.concurrency):
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                break
            group = [
                asyncio.ensure_future(run_one(index, items[index]))
                for index in range(start, min(start + self.concurrency, total))
            ]
            if await self._await_group(group, cancel_event):
                result.cancelled = True
                break

        result.failures.sort(key=lambda f: f.index)
        return result

    @staticmethod
    async def _await_group(
        tasks: list[asyncio.Future], cancel_event: asyncio.Event | None
    ) -> bool:
        """Wait for a group; return True if it was cut short by cancellation."""
        if cancel_event is None:
            await asyncio.gather(*tasks)
            return False

        waiter = asyncio.ensure_future(cancel_event.wait())
        pending: set[asyncio.Future] = set(tasks)
        try:
            while pending:
                done, _ = await asyncio.wait(
                    pending | {waiter}, return_when=asyncio.FIRST_COMPLETED
                )
                pending -= done
                if waiter in done:
                    for task in pending:
                        task.cancel()
                    await asyncio.gather(*pending, return_exceptions=True)
                    return True
            return False
        finally:
            if not waiter.done():
                waiter.cancel()
