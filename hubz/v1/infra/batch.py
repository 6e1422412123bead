"""
Batch runner: apply one action to every fetched subject, isolating failures.

Both the job engine and the notification batches are built on this, so the
counting and logging rules are the same everywhere:

- ``fetch()`` errors propagate (the whole run failed, not one subject)
- an action returning ``BatchOutcome.SKIPPED`` counts as skipped
- any other return counts as a success
- an action raising ``Exception`` counts as a failure, is logged and the run continues
"""

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from hubz.config.logging import get_logger

logger = get_logger(__name__)

S = TypeVar("S")


class BatchOutcome(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"


@dataclass
class BatchRunResult:
    """Counts for one batch run."""

    name: str
    success_count: int = 0
    skipped_count: int = 0
    failure_count: int = 0
    failed_subjects: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.success_count + self.skipped_count + self.failure_count

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "success_count": self.success_count,
            "skipped_count": self.skipped_count,
            "failure_count": self.failure_count,
            "failed_subjects": list(self.failed_subjects),
            "total": self.total,
        }


async def run_batch(
    name: str,
    fetch: Callable[[], Awaitable[Iterable[S]]],
    action: Callable[[S], Awaitable[Any]],
    describe: Callable[[S], str] = str,
) -> BatchRunResult:
    """
    Run ``action`` over every subject returned by ``fetch``, in order.

    Args:
        name: Batch name used in logs and in the result
        fetch: Loads the subjects to process
        action: Processes one subject; return BatchOutcome.SKIPPED to skip it
        describe: Identifier for a subject in logs and ``failed_subjects``

    Returns:
        BatchRunResult with success, skipped and failure counts
    """
    subjects = await fetch()
    result = BatchRunResult(name=name)

    for subject in subjects:
        try:
            outcome = await action(subject)
        except Exception as e:
            subject_id = describe(subject)
            result.failure_count += 1
            result.failed_subjects.append(subject_id)
            logger.error(
                "Batch item failed",
                batch=name,
                subject=subject_id,
                error=str(e),
                exception=e.__class__.__name__,
            )
            continue

        if outcome is BatchOutcome.SKIPPED:
            result.skipped_count += 1
        else:
            result.success_count += 1

    logger.info(
        "Batch run finished",
        batch=name,
        success=result.success_count,
        skipped=result.skipped_count,
        failed=result.failure_count,
    )
    return result
