"""Allowed job status transitions."""

from typing import Dict, FrozenSet

from lut_action.errors import InvalidStateTransitionError
from lut_action.jobs.models import JobStatus

TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING, JobStatus.FAILED}),
    JobStatus.PROCESSING: frozenset({JobStatus.UPLOADING, JobStatus.FAILED}),
    JobStatus.UPLOADING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    # Progress updates keep the status unchanged.
    if current == target:
        return current not in (JobStatus.COMPLETED, JobStatus.FAILED)
    return target in TRANSITIONS[current]


def check_transition(job_id: str, current: JobStatus, target: JobStatus) -> None:
    if not can_transition(current, target):
        raise InvalidStateTransitionError(job_id, current.value, target.value)
