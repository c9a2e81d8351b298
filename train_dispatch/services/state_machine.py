from enum import Enum


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELED = "canceled"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETE, JobStatus.FAILED, JobStatus.CANCELED})

# running -> running is the heartbeat / reclaim self-loop.
ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.RUNNING, JobStatus.CANCELED}),
    JobStatus.RUNNING: frozenset({JobStatus.RUNNING, JobStatus.COMPLETE, JobStatus.FAILED, JobStatus.CANCELED}),
    JobStatus.COMPLETE: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELED: frozenset(),
}

# Column stamped alongside each status, written in the same UPDATE.
TRANSITION_TIMESTAMP: dict[JobStatus, str] = {
    JobStatus.RUNNING: "started_at",
    JobStatus.COMPLETE: "completed_at",
    JobStatus.FAILED: "failed_at",
    JobStatus.CANCELED: "canceled_at",
}


def is_terminal(status: str) -> bool:
    return JobStatus(status) in TERMINAL_STATUSES


def can_transition(current: str, target: str) -> bool:
    return JobStatus(target) in ALLOWED_TRANSITIONS[JobStatus(current)]
