"""Bounded, order-preserving worker pool shared by batch resolution and formatting."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor

logger = logging.getLogger(__name__)


def run_in_order(items, func, max_workers, cancel_event=None):
    """Call ``func(index, item)`` for every item with at most ``max_workers`` in flight.

    Each worker pulls the next pending index, so ``results[i]`` always holds
    the value for ``items[i]`` whatever order the calls finish in.

    When ``cancel_event`` is set, workers stop taking new indices; slots that
    were never started stay None and finished ones are kept.

    ``func`` is expected to handle its own errors; an exception it raises is
    re-raised here once the pool has drained.
    """
    items = list(items)
    results = [None] * len(items)  # Pre-allocate to maintain order
    if not items:
        return results

    lock = threading.Lock()
    next_index = 0

    def worker():
        nonlocal next_index
        while True:
            if cancel_event is not None and cancel_event.is_set():
                return
            with lock:
                if next_index >= len(items):
                    return
                i = next_index
                next_index += 1
            results[i] = func(i, items[i])

    workers = max(1, min(max_workers, len(items)))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(worker) for _ in range(workers)]
        for future in futures:
            future.result()  # This will raise any exceptions

    if cancel_event is not None and cancel_event.is_set():
        pending = sum(1 for r in results if r is None)
        logger.info(f"Batch cancelled with {pending}/{len(items)} items not processed")
    return results
