"""
Bounded-concurrency fan-out with all-settle semantics.

Items are processed in fixed-size batches; inside a batch every item runs on
a thread pool and each failure is captured against its item instead of being
raised, so one bad item never aborts its siblings.
"""
import concurrent.futures
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Generic, Iterable, List, Sequence, TypeVar

from courierhub.services.courier_types import ItemFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class SettledBatch(Generic[T, R]):
    results: List[R] = field(default_factory=list)
    failures: List[ItemFailure] = field(default_factory=list)


def chunked(items: Sequence[T], size: int) -> Iterable[Sequence[T]]:
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    for start in range(0, len(items), size):
        yield items[start:start + size]


def run_settled(
    items: Sequence[T],
    worker: Callable[[T], R],
    batch_size: int,
    key: Callable[[T], str] = str,
    label: str = "BATCH",
) -> SettledBatch:
    """
    Run `worker` over `items` in batches of `batch_size`, concurrently within a batch.

    Results keep input order; items whose worker raised are reported in
    `failures` and left out of `results`.
    """
    settled: SettledBatch = SettledBatch()
    for batch in chunked(list(items), batch_size):
        outcomes: Dict[int, R] = {}
        errors: Dict[int, ItemFailure] = {}
        with concurrent.futures.ThreadPoolExecutor(max_workers=len(batch)) as executor:
            future_to_index = {executor.submit(worker, item): i for i, item in enumerate(batch)}
            for future in concurrent.futures.as_completed(future_to_index):
                i = future_to_index[future]
                try:
                    outcomes[i] = future.result()
                except Exception as e:
                    item_key = key(batch[i])
                    logger.warning(f"[{label}] item {item_key} failed: {e}")
                    errors[i] = ItemFailure(key=item_key, error=str(e))
        settled.results.extend(outcomes[i] for i in sorted(outcomes))
        settled.failures.extend(errors[i] for i in sorted(errors))
    return settled
