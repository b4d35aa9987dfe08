#########################################################################################
##
##                              CONCURRENCY COORDINATOR
##                                  (parallel.py)
##
##         Fork-join execution of independent profiling tasks on a thread pool.
##         Each task builds or receives its own restricted objective copy.
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Sequence, TypeVar

from .restricted import RestrictedObjective

T = TypeVar("T")


# HELPERS ===============================================================================

def default_workers(n_workers: int | None = None) -> int:
    """Worker pool size: ``n_workers`` or the number of available CPUs."""
    if n_workers is not None:
        return max(1, int(n_workers))
    return os.cpu_count() or 1


def chunks(items: Sequence[T], n: int) -> list[list[T]]:
    """Split ``items`` into at most ``n`` contiguous, near-equal, non-empty chunks."""
    items = list(items)
    n = max(1, min(n, len(items)))
    size, extra = divmod(len(items), n)
    out, start = [], 0
    for k in range(n):
        stop = start + size + (1 if k < extra else 0)
        out.append(items[start:stop])
        start = stop
    return [c for c in out if c]


def isolated_copies(restricted: RestrictedObjective, n: int) -> list[RestrictedObjective]:
    """``n`` independent copies of ``restricted``, one per concurrent task."""
    return [restricted.isolated_copy() for _ in range(n)]


# EXECUTION =============================================================================

def run_tasks(
    tasks: Sequence[Callable[[], T]],
    parallel: bool = False,
    n_workers: int | None = None,
) -> list[T]:
    """Run zero-argument ``tasks`` and return their results in task order.

    Tasks run inline unless ``parallel`` is set and there is more than one.
    All tasks complete before this returns; the first exception raised by a
    task is re-raised here.
    """
    if not parallel or len(tasks) <= 1:
        return [task() for task in tasks]

    workers = min(default_workers(n_workers), len(tasks))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(task) for task in tasks]
        return [future.result() for future in futures]


__all__ = [
    "default_workers",
    "chunks",
    "isolated_copies",
    "run_tasks",
]
