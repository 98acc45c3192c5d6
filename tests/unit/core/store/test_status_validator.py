# tests/unit/core/store/test_status_validator.py
"""Tests for the run status transition table."""

import pytest

from longhaul.contracts import COMPLETED_STATUSES, InvalidStatusTransitionError, RunStatus
from longhaul.core.store import VALID_STATUS_TRANSITIONS, is_valid_transition, validate_transition


def test_every_status_has_an_entry() -> None:
    assert set(VALID_STATUS_TRANSITIONS) == set(RunStatus)


@pytest.mark.parametrize("status", sorted(COMPLETED_STATUSES))
def test_completed_statuses_have_no_way_out(status: RunStatus) -> None:
    assert VALID_STATUS_TRANSITIONS[status] == frozenset()


@pytest.mark.parametrize(
    ("from_status", "to_status"),
    [
        (RunStatus.ENQUEUED, RunStatus.RUNNING),
        (RunStatus.RUNNING, RunStatus.PAUSING),
        (RunStatus.PAUSING, RunStatus.PAUSED),
        (RunStatus.PAUSED, RunStatus.ENQUEUED),
        (RunStatus.PAUSED, RunStatus.CANCELLED),
        (RunStatus.CANCELLING, RunStatus.CANCELLED),
        (RunStatus.INTERRUPTED, RunStatus.RUNNING),
        (RunStatus.INTERRUPTED, RunStatus.ENQUEUED),
        (RunStatus.RUNNING, RunStatus.SUCCEEDED),
        (RunStatus.PAUSING, RunStatus.SUCCEEDED),
        (RunStatus.ENQUEUED, RunStatus.ERRORED),
    ],
)
def test_allowed_transitions(from_status: RunStatus, to_status: RunStatus) -> None:
    assert is_valid_transition(from_status, to_status)


@pytest.mark.parametrize(
    ("from_status", "to_status"),
    [
        (RunStatus.ENQUEUED, RunStatus.ENQUEUED),
        (RunStatus.RUNNING, RunStatus.ENQUEUED),
        (RunStatus.RUNNING, RunStatus.PAUSED),
        (RunStatus.PAUSED, RunStatus.RUNNING),
        (RunStatus.CANCELLING, RunStatus.PAUSING),
        (RunStatus.SUCCEEDED, RunStatus.RUNNING),
        (RunStatus.CANCELLED, RunStatus.ENQUEUED),
    ],
)
def test_rejected_transitions(from_status: RunStatus, to_status: RunStatus) -> None:
    with pytest.raises(InvalidStatusTransitionError) as exc_info:
        validate_transition("run-1", from_status, to_status)

    assert exc_info.value.from_status == from_status.value
    assert exc_info.value.to_status == to_status.value
    assert exc_info.value.run_id == "run-1"
