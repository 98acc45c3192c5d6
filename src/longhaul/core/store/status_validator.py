"""Status transition rules enforced by the store before a write commits.

A worker's in-memory status can be stale for many elements, so legality is
checked against the persisted status inside the writing transaction rather
than against whatever the caller last read.
"""

from longhaul.contracts import InvalidStatusTransitionError, RunStatus

# Completed statuses (succeeded, cancelled, errored) have no outgoing transitions.
VALID_STATUS_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    # enqueued -> errored: the job could not be enqueued, or the task vanished before it ran
    RunStatus.ENQUEUED: frozenset({RunStatus.RUNNING, RunStatus.PAUSING, RunStatus.CANCELLING, RunStatus.ERRORED}),
    RunStatus.RUNNING: frozenset(
        {
            RunStatus.SUCCEEDED,
            RunStatus.PAUSING,
            RunStatus.CANCELLING,
            RunStatus.INTERRUPTED,
            RunStatus.ERRORED,
        }
    ),
    # pausing -> succeeded: the pause arrived while the last element was processed
    RunStatus.PAUSING: frozenset({RunStatus.PAUSED, RunStatus.CANCELLING, RunStatus.SUCCEEDED, RunStatus.ERRORED}),
    # cancelling -> cancelled also covers forcing a stuck run
    RunStatus.CANCELLING: frozenset({RunStatus.CANCELLED, RunStatus.SUCCEEDED, RunStatus.ERRORED}),
    RunStatus.PAUSED: frozenset({RunStatus.ENQUEUED, RunStatus.CANCELLING, RunStatus.CANCELLED}),
    RunStatus.INTERRUPTED: frozenset(
        {
            RunStatus.ENQUEUED,
            RunStatus.RUNNING,
            RunStatus.PAUSING,
            RunStatus.CANCELLING,
            RunStatus.ERRORED,
        }
    ),
    RunStatus.SUCCEEDED: frozenset(),
    RunStatus.CANCELLED: frozenset(),
    RunStatus.ERRORED: frozenset(),
}


def is_valid_transition(from_status: RunStatus, to_status: RunStatus) -> bool:
    return to_status in VALID_STATUS_TRANSITIONS[from_status]


def validate_transition(run_id: str, from_status: RunStatus, to_status: RunStatus) -> None:
    """Raise if moving ``run_id`` from ``from_status`` to ``to_status`` is illegal.

    Raises:
        InvalidStatusTransitionError: If the transition is not allowed.
    """
    if not is_valid_transition(from_status, to_status):
        raise InvalidStatusTransitionError(run_id, from_status.value, to_status.value)
