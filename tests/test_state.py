from __future__ import annotations

import pytest

from courtside.models.recording import Recording, RecordingStatus
from courtside.pipeline.errors import InvalidTransition
from courtside.pipeline.state import RESUMABLE, TERMINAL, can_transition, is_terminal, transition

S = RecordingStatus


def _recording(status: RecordingStatus, **fields) -> Recording:
    defaults = {"id": 1, "total_chunks": 3, "fetched_chunks": 0}
    defaults.update(fields)
    return Recording(status=status, **defaults)


def test_happy_path_order() -> None:
    path = [S.PENDING, S.REQUESTING_CHUNKS, S.POLLING, S.DOWNLOADING, S.CONSOLIDATING, S.UPLOADING, S.COMPLETED]
    for current, target in zip(path, path[1:]):
        assert can_transition(current, target)
    assert not can_transition(S.PENDING, S.POLLING)
    assert not can_transition(S.DOWNLOADING, S.POLLING)


def test_failed_reachable_from_every_non_terminal_state() -> None:
    for status in S:
        if status in TERMINAL:
            continue
        assert can_transition(status, S.FAILED)


def test_terminal_states_only_leave_through_retry() -> None:
    assert is_terminal(S.COMPLETED) and is_terminal(S.FAILED)
    assert not any(can_transition(S.COMPLETED, target) for target in S)
    assert all(can_transition(S.FAILED, target) for target in RESUMABLE)
    assert not can_transition(S.FAILED, S.COMPLETED)


def test_illegal_transition_raises() -> None:
    recording = _recording(S.POLLING)
    with pytest.raises(InvalidTransition):
        transition(recording, S.UPLOADING)
    assert recording.status == S.POLLING


def test_consolidating_requires_all_chunks_fetched() -> None:
    recording = _recording(S.DOWNLOADING, fetched_chunks=2)
    with pytest.raises(InvalidTransition):
        transition(recording, S.CONSOLIDATING)

    recording.fetched_chunks = 3
    assert transition(recording, S.CONSOLIDATING) == S.DOWNLOADING
    assert recording.consolidation_started_at is not None


def test_storage_key_only_with_completed() -> None:
    uploading = _recording(S.UPLOADING)
    with pytest.raises(InvalidTransition):
        transition(uploading, S.COMPLETED)

    uploading.consolidated_storage_key = "recordings/abc.mp4"
    transition(uploading, S.COMPLETED)
    assert uploading.status == S.COMPLETED

    stray = _recording(S.CONSOLIDATING, consolidated_storage_key="recordings/abc.mp4")
    with pytest.raises(InvalidTransition):
        transition(stray, S.UPLOADING)


def test_failed_records_stage_and_error_and_retry_clears_it() -> None:
    recording = _recording(S.POLLING)
    transition(recording, S.FAILED, error="chunk 2 export failed")
    assert recording.failed_stage == S.POLLING
    assert recording.error_message == "chunk 2 export failed"

    transition(recording, S.POLLING)
    assert recording.error_message is None
    assert recording.failed_stage == S.POLLING
