"""Bounded-concurrency runner for package operations."""

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, Deque, Dict, List, Protocol, Sequence, TypeVar

from .constants import MAX_CONCURRENCY
from .core import BatchResult
from .notify import Notifier, ProgressHandle

logger = logging.getLogger(__name__)


class NamedItem(Protocol):
    name: str


T = TypeVar("T", bound=NamedItem)


class BatchExecutor:
    """
    Run independent, fallible async operations under a concurrency cap.

    A fixed pool of ``min(len(items), concurrency)`` worker tasks pulls
    from one shared queue. Taking an item off the queue and marking it
    in progress happens with no ``await`` in between, so no item is ever
    processed twice. A failed item is recorded and never cancels its
    siblings. Exactly one aggregate notification is emitted once every
    worker has finished.
    """

    def __init__(
        self,
        action: str,
        notifier: Notifier,
        concurrency: int = MAX_CONCURRENCY,
        noun: str = "packages",
    ):
        """
        Args:
            action: Gerund used in messages ("installing", "removing")
            notifier: Receives per-item progress and the final report
            concurrency: Maximum number of items in flight
            noun: What the items are, for the final report
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.action = action
        self.notifier = notifier
        self.concurrency = concurrency
        self.noun = noun

    async def run(self, items: Sequence[T], worker: Callable[[T], Awaitable[object]]) -> BatchResult:
        """Process every item with ``worker``.

        Returns:
            BatchResult with sorted succeeded and failed names
        """
        result = BatchResult(action=self.action)
        total = len(items)
        if total == 0:
            logger.info(f"No {self.noun} to process ({self.action})")
            return result

        pending: Deque[T] = deque(items)
        in_progress: Dict[str, ProgressHandle] = {}
        succeeded: List[str] = []
        failed: List[str] = []
        started = 0

        async def work() -> None:
            nonlocal started
            while pending:
                item = pending.popleft()
                started += 1
                name = item.name
                in_progress[name] = self.notifier.progress(f"{self.action} {name} ({started}/{total})")
                try:
                    await worker(item)
                except Exception as e:
                    logger.warning(f"{self.action} {name} failed: {e}")
                    failed.append(name)
                    self.notifier.warning(f"failed {self.action} {name}", detail=str(e) or None)
                else:
                    succeeded.append(name)
                finally:
                    in_progress.pop(name).dismiss()

        workers = min(total, self.concurrency)
        await asyncio.gather(*(work() for _ in range(workers)))

        result.succeeded = sorted(succeeded)
        result.failed = sorted(failed)
        self._report(result)
        return result

    def _report(self, result: BatchResult) -> None:
        if result.ok:
            self.notifier.success(f"finished {self.action} {len(result.succeeded)} {self.noun}")
        else:
            failed = ", ".join(result.failed)
            self.notifier.warning(
                f"finished {self.action} {self.noun} ({len(result.failed)} failed: {failed})"
            )
