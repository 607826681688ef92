"""
Bounded worker pool used inside a single stage's fit.

Stages never run concurrently with each other (stage N+1 consumes stage N's
output); only per-column or per-partition work inside one fit is fanned out.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Callable, Iterable, List, Optional, TypeVar

if TYPE_CHECKING:
    from stageml.config import Configuration

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def parallel_map(
    func: Callable[[T], R],
    items: Iterable[T],
    configuration: Optional["Configuration"] = None,
) -> List[R]:
    """
    Apply ``func`` to every item, in parallel when the configuration allows it.

    Results keep the order of ``items``. The first exception raised by a worker
    propagates to the caller.

    Args:
        func: Function applied to each item.
        items: Work items.
        configuration: Supplies ``concurrency_enabled`` and ``max_threads_per_task``.
            Without one, work runs serially.
    """
    items = list(items)
    if (
        configuration is None
        or not configuration.concurrency_enabled
        or configuration.max_threads_per_task <= 1
        or len(items) <= 1
    ):
        return [func(item) for item in items]

    workers = min(configuration.max_threads_per_task, len(items))
    logger.debug(f"Running {len(items)} tasks on {workers} threads")
    with ThreadPoolExecutor(max_workers=workers) as executor:
        return list(executor.map(func, items))
