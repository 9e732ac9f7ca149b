"""
Concurrent batch execution for user-initiated multi-file operations.

Every item is issued at once with no concurrency cap and no queue, so only
use this for small batches (a gallery upload is at most a handful of files).
Items that succeed stay done even when a sibling fails; there is no rollback.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Sequence

from ..errors import ServiceError


LOGGER = logging.getLogger(__name__)


@dataclass
class BatchResult:
    """Result of a batch operation"""
    total: int = 0
    results: Dict[int, Any] = field(default_factory=dict)
    errors: Dict[int, Exception] = field(default_factory=dict)

    @property
    def successful(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> int:
        return len(self.errors)

    def completed(self) -> List[Any]:
        """Successful results in input order"""
        return [self.results[i] for i in sorted(self.results)]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            'total': self.total,
            'successful': self.successful,
            'failed': self.failed,
            'errors': {i: str(e) for i, e in self.errors.items()},
        }

    def __str__(self):
        return f"BatchResult(total={self.total}, successful={self.successful}, failed={self.failed})"


class BatchError(ServiceError):
    """
    Raised when at least one batch item failed; carries the full result.

    `message` is the first failure's user-facing message.
    """
    def __init__(self, result: BatchResult):
        self.result = result
        first = result.errors[min(result.errors)]
        self.first_error = first
        super().__init__(getattr(first, 'message', None) or str(first), cause=first)


def run_batch(func: Callable[[Any], Any], items: Sequence[Any]) -> List[Any]:
    """
    Run func(item) for every item concurrently.

    Args:
        func: Callable applied to each item
        items: Items to process

    Returns:
        Results in input order

    Raises:
        BatchError: after every item has finished, if any of them failed
    """
    result = BatchResult(total=len(items))
    if not items:
        return []

    with ThreadPoolExecutor(max_workers=len(items)) as executor:
        futures = [executor.submit(func, item) for item in items]

    for index, future in enumerate(futures):
        error = future.exception()
        if error is not None:
            LOGGER.error("batch item %s/%s failed: %s", index + 1, result.total, error)
            result.errors[index] = error
        else:
            result.results[index] = future.result()

    if result.errors:
        raise BatchError(result)
    return result.completed()
