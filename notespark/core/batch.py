"""
Parallel page fan-out with partial-failure tolerance.

Pages are processed in fixed-size batches: pages inside a batch run
concurrently, batches run one after another. Every worker owns the result slot
of its page index, so the merged list keeps page order regardless of which
call finishes first. A page whose worker raises is recorded as None.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CONCURRENCY = 3
DEFAULT_SUCCESS_RATIO = 0.7
PAGE_MARKER_TEMPLATE = "--- PAGE {number} ---"
FAILED_PAGE_PLACEHOLDER = "[No text detected]"


@dataclass
class BatchOutcome(Generic[T]):
    """Per-page results of a batch run."""
    results: List[Optional[T]]
    failed_indices: List[int] = field(default_factory=list)
    errors: List[Optional[str]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return self.total - len(self.failed_indices)

    @property
    def success_ratio(self) -> float:
        if not self.results:
            return 0.0
        return self.succeeded / self.total

    @property
    def failed_pages(self) -> List[int]:
        """One-based page numbers that produced nothing."""
        return [index + 1 for index in self.failed_indices]

    def is_accepted(self, required_ratio: float = DEFAULT_SUCCESS_RATIO) -> bool:
        return bool(self.results) and self.success_ratio >= required_ratio


class ParallelBatchProcessor:
    """
    Bounded fan-out/fan-in over page references.

    Args:
        concurrency: Pages processed concurrently within one batch
    """

    def __init__(self, concurrency: int = DEFAULT_CONCURRENCY):
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self.concurrency = concurrency

    async def process(
        self,
        items: Sequence[str],
        worker: Callable[[str], Awaitable[Optional[T]]],
        is_usable: Optional[Callable[[T], bool]] = None
    ) -> BatchOutcome[T]:
        """
        Run the worker over every item and collect results in input order.

        Args:
            items: Page references in page order
            worker: Coroutine function producing a page result or None
            is_usable: Extra check; unusable results count as failed pages

        Returns:
            BatchOutcome with one slot per item
        """
        results: List[Optional[T]] = [None] * len(items)
        errors: List[Optional[str]] = [None] * len(items)

        for batch_start in range(0, len(items), self.concurrency):
            batch = list(items[batch_start:batch_start + self.concurrency])
            logger.info(
                f"Processing pages {batch_start + 1}-{batch_start + len(batch)} "
                f"of {len(items)} in parallel"
            )

            async def run(offset: int, item: str) -> None:
                index = batch_start + offset
                try:
                    results[index] = await worker(item)
                except Exception as e:
                    logger.warning(f"Page {index + 1}/{len(items)} failed: {e}")
                    errors[index] = str(e)

            await asyncio.gather(*(run(offset, item) for offset, item in enumerate(batch)))

        failed = []
        for index, result in enumerate(results):
            if result is None or (is_usable is not None and not is_usable(result)):
                results[index] = None
                failed.append(index)

        outcome = BatchOutcome(results=results, failed_indices=failed, errors=errors)
        logger.info(
            f"Batch complete: {outcome.succeeded}/{outcome.total} pages succeeded "
            f"({outcome.success_ratio:.0%})"
        )
        return outcome


def merge_pages(
    page_texts: Sequence[Optional[str]],
    with_markers: bool = True,
    placeholder: str = FAILED_PAGE_PLACEHOLDER
) -> str:
    """
    Join page texts in order, with a numbered marker before each page.

    Missing pages keep their slot as a placeholder, so markers always run
    1..N in input order.
    """
    sections = []
    for number, text in enumerate(page_texts, start=1):
        body = text if text else placeholder
        if with_markers:
            sections.append(f"{PAGE_MARKER_TEMPLATE.format(number=number)}\n{body}")
        else:
            sections.append(body)
    return "\n\n".join(sections)
