"""Two-step writes across the row store and the blob store.

``perform_then`` runs a primary step, then a dependent secondary step, and
undoes the primary if the secondary fails. ``perform_with_cleanup`` runs a
primary step and then a best-effort cleanup. In both cases a failure of the
undo/cleanup step never masks the real outcome: it is logged, counted and
reported as a warning.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

import structlog

from backoffice.monitoring.metrics import record_blob_cleanup_failed

logger = structlog.get_logger()

T = TypeVar("T")
U = TypeVar("U")


@dataclass
class Outcome(Generic[T]):
    """Result of a compensated operation plus any non-fatal warnings."""

    value: T
    warnings: list[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.warnings


async def perform_then(
    primary: Callable[[], Awaitable[T]],
    secondary: Callable[[T], Awaitable[U]],
    compensate: Callable[[T], Awaitable[object]],
    *,
    step: str,
) -> Outcome[U]:
    """Run ``primary`` then ``secondary``; undo ``primary`` if ``secondary`` fails.

    The secondary step's exception is re-raised after compensation. If the
    compensation itself fails, the failure is attached to that exception as
    a note and logged as a warning.

    Args:
        primary: First write, e.g. a blob upload.
        secondary: Dependent write given the primary result, e.g. a row insert.
        compensate: Undo of the primary write.
        step: Name used in logs and metrics.
    """
    log = logger.bind(step=step)
    first = await primary()
    try:
        value = await secondary(first)
    except Exception as exc:
        log.warning("secondary_step_failed", error=str(exc))
        try:
            await compensate(first)
        except Exception as comp_exc:
            warning = f"{step}: compensation failed: {comp_exc}"
            log.warning("compensation_failed", error=str(comp_exc))
            record_blob_cleanup_failed(step)
            exc.add_note(warning)
        else:
            log.info("compensation_applied")
        raise
    return Outcome(value=value)


async def perform_with_cleanup(
    primary: Callable[[], Awaitable[T]],
    cleanup: Callable[[T], Awaitable[object]],
    *,
    step: str,
) -> Outcome[T]:
    """Run ``primary``, then ``cleanup`` as best effort.

    A cleanup failure becomes a warning on the returned outcome.
    """
    value = await primary()
    outcome = Outcome(value=value)
    try:
        await cleanup(value)
    except Exception as exc:
        warning = f"{step}: cleanup failed: {exc}"
        logger.warning("cleanup_failed", step=step, error=str(exc))
        record_blob_cleanup_failed(step)
        outcome.warnings.append(warning)
    return outcome
