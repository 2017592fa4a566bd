"""Recording state machine.

The transition table below is the only place that decides which status
changes are legal. ``transition()`` applies a change to a ``Recording``
row in memory; callers commit it.
"""
from datetime import datetime
import logging

from courtside.models.recording import Recording, RecordingStatus
from courtside.pipeline.errors import InvalidTransition

logger = logging.getLogger(__name__)

S = RecordingStatus

TERMINAL = frozenset({S.COMPLETED, S.FAILED})

# Stages a FAILED recording can be resumed at by an operator retry
RESUMABLE = frozenset({
    S.PENDING, S.REQUESTING_CHUNKS, S.POLLING, S.DOWNLOADING, S.CONSOLIDATING, S.UPLOADING,
})

TRANSITIONS: dict[RecordingStatus, frozenset[RecordingStatus]] = {
    S.PENDING: frozenset({S.REQUESTING_CHUNKS, S.FAILED}),
    S.REQUESTING_CHUNKS: frozenset({S.POLLING, S.FAILED}),
    S.POLLING: frozenset({S.DOWNLOADING, S.FAILED}),
    S.DOWNLOADING: frozenset({S.CONSOLIDATING, S.FAILED}),
    S.CONSOLIDATING: frozenset({S.UPLOADING, S.FAILED}),
    S.UPLOADING: frozenset({S.COMPLETED, S.FAILED}),
    S.COMPLETED: frozenset(),
    S.FAILED: RESUMABLE,
}


def is_terminal(status: RecordingStatus) -> bool:
    return status in TERMINAL


def can_transition(current: RecordingStatus, target: RecordingStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def transition(
    recording: Recording,
    target: RecordingStatus,
    *,
    error: str | None = None,
    now: datetime | None = None,
) -> RecordingStatus:
    """Move ``recording`` to ``target``, enforcing the table and row invariants.

    Returns the previous status.
    """
    current = recording.status
    if not can_transition(current, target):
        raise InvalidTransition(f"recording {recording.id}: {current.value} -> {target.value} not allowed")

    if target == S.CONSOLIDATING and recording.fetched_chunks != recording.total_chunks:
        raise InvalidTransition(
            f"recording {recording.id}: cannot consolidate with "
            f"{recording.fetched_chunks}/{recording.total_chunks} chunks fetched"
        )
    if target == S.COMPLETED and not recording.consolidated_storage_key:
        raise InvalidTransition(f"recording {recording.id}: cannot complete without an archive location")
    if target != S.COMPLETED and recording.consolidated_storage_key:
        raise InvalidTransition(f"recording {recording.id}: archive location set outside COMPLETED")

    now = now or datetime.utcnow()
    if target == S.FAILED:
        recording.failed_stage = current
        recording.error_message = error or recording.error_message or "Unknown error"
    elif current == S.FAILED:
        recording.error_message = None
    if target == S.CONSOLIDATING:
        recording.consolidation_started_at = now

    recording.status = target
    recording.updated_at = now

    if target == S.FAILED:
        logger.error(f"recording {recording.id}: {current.value} -> FAILED ({recording.error_message})")
    else:
        logger.info(f"recording {recording.id}: {current.value} -> {target.value}")
    return current
