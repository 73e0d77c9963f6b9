"""Small helpers around ThreadPoolExecutor shared by indexing, index loading
and result assembly."""
import logging
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence

from django.db import connections

logger = logging.getLogger(__name__)


def split_into_batches(items: Sequence, batch_size: int) -> List[list]:
    """Consecutive slices of ``batch_size`` items."""
    batch_size = max(1, int(batch_size))
    items = list(items)
    return [items[i : i + batch_size] for i in range(0, len(items), batch_size)]


def split_into_chunks(items: Sequence, chunks: int) -> List[list]:
    """At most ``chunks`` slices of roughly equal size."""
    items = list(items)
    if not items:
        return []
    chunks = max(1, min(int(chunks), len(items)))
    size = -(-len(items) // chunks)
    return split_into_batches(items, size)


@dataclass
class BatchOutcome:
    results: List[Any] = field(default_factory=list)  # aligned with batches, None when missing
    timed_out: int = 0
    failed: int = 0

    @property
    def partial(self) -> bool:
        return bool(self.timed_out or self.failed)


def _close_connections_after(func, uses_database):
    if not uses_database:
        return func

    def runner(batch):
        try:
            return func(batch)
        finally:
            # each worker thread owns its own connection
            connections.close_all()

    return runner


def run_batches(
    func: Callable[[list], Any],
    batches: List[list],
    max_workers: int,
    timeout: Optional[float] = None,
    uses_database: bool = False,
) -> BatchOutcome:
    """Run ``func`` once per batch on a bounded pool and wait for all of them.

    With one worker (or one batch) everything runs inline in the calling
    thread. With ``timeout`` set, batches still running when it expires are
    dropped. A batch raising an exception is logged and counted as failed.
    """
    outcome = BatchOutcome(results=[None] * len(batches))
    if not batches:
        return outcome

    if max_workers <= 1 or len(batches) == 1:
        for i, batch in enumerate(batches):
            try:
                outcome.results[i] = func(batch)
            except Exception:
                logger.exception("Batch %d/%d failed", i + 1, len(batches))
                outcome.failed += 1
        return outcome

    runner = _close_connections_after(func, uses_database)
    executor = ThreadPoolExecutor(max_workers=min(max_workers, len(batches)))
    try:
        futures = {executor.submit(runner, batch): i for i, batch in enumerate(batches)}
        done, not_done = wait(futures, timeout=timeout)

        for future in done:
            i = futures[future]
            try:
                outcome.results[i] = future.result()
            except Exception:
                logger.exception("Batch %d/%d failed", i + 1, len(batches))
                outcome.failed += 1

        if not_done:
            outcome.timed_out = len(not_done)
            logger.warning(
                "%d of %d batches did not finish within %ss, dropping them",
                len(not_done), len(batches), timeout,
            )
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
    return outcome
