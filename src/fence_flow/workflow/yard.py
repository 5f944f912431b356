"""Yard and crew phase sequencing for jobs.

A job's status chain doubles as its phase log. Entering a phase stamps one
timestamp column, and leaving ``picking`` forward also stamps
``picking_completed_at``. Stamps are written once; a correction back down the
chain clears the stamps of the phase being left so it can be recorded again.
"""

from datetime import date, datetime, timedelta
from typing import Optional

from fence_flow.database.models import Job, YardSnapshot
from fence_flow.utils.constants import JOB_STATUSES

from .errors import PhaseAlreadyRecorded, PhaseOutOfOrder

# Column stamped on entry to each status
ENTRY_STAMPS = {
    "ready_for_yard": "ready_for_yard_at",
    "picking": "picking_started_at",
    "staged": "staging_completed_at",
    "loaded": "loaded_at",
    "in_progress": "work_started_at",
    "completed": "work_completed_at",
}

# Column stamped when leaving a status forward
EXIT_STAMPS = {
    "picking": "picking_completed_at",
}

# Every phase column, earliest first
PHASE_FIELDS = [
    "ready_for_yard_at",
    "picking_started_at",
    "picking_completed_at",
    "staging_completed_at",
    "loaded_at",
    "work_started_at",
    "work_completed_at",
]


def _as_datetime(value) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _as_text(value) -> str:
    if isinstance(value, datetime):
        return value.isoformat(timespec="seconds")
    return str(value)


def phase_index(status: str) -> int:
    return JOB_STATUSES.index(status)


def is_forward(from_status: str, to_status: str) -> bool:
    return phase_index(to_status) > phase_index(from_status)


def check_not_recorded(job: Job, to_status: str):
    """Reject a scan into a phase whose timestamp is already set.

    Only applies to forward moves and repeats of the current phase; a
    correction back to an earlier phase keeps that phase's stamp.
    """
    if to_status != job.status and not is_forward(job.status, to_status):
        return
    column = ENTRY_STAMPS.get(to_status)
    if column and getattr(job, column):
        raise PhaseAlreadyRecorded(job.id, column, getattr(job, column))


def phase_fields(job: Job, to_status: str, now: datetime,
                 at=None) -> dict:
    """Return the phase columns to write for moving ``job`` to ``to_status``.

    Args:
        job: Current state of the job.
        to_status: Target status, already known to be a legal move.
        now: Transition time from the engine clock.
        at: Optional scan time to record instead of ``now``.

    Raises:
        PhaseAlreadyRecorded: The entry stamp is already set.
        PhaseOutOfOrder: The stamp would precede an earlier phase.
    """
    check_not_recorded(job, to_status)
    stamp = at if at is not None else now

    if not is_forward(job.status, to_status):
        return _void_left_phase(job, to_status)

    fields = {}
    exit_column = EXIT_STAMPS.get(job.status)
    if exit_column:
        fields[exit_column] = stamp
    entry_column = ENTRY_STAMPS.get(to_status)
    if entry_column:
        fields[entry_column] = stamp

    for column in fields:
        _check_order(job, column, stamp)
    return {k: _as_text(v) for k, v in fields.items()}


def _check_order(job: Job, column: str, stamp):
    new_at = _as_datetime(stamp)
    for earlier in PHASE_FIELDS[:PHASE_FIELDS.index(column)]:
        recorded = getattr(job, earlier)
        if recorded and _as_datetime(recorded) > new_at:
            raise PhaseOutOfOrder(
                job.id, column, _as_text(stamp), earlier, recorded,
            )


def _void_left_phase(job: Job, to_status: str) -> dict:
    """Clear stamps belonging to phases above ``to_status``."""
    fields = {}
    keep_through = phase_index(to_status)
    for status in JOB_STATUSES[keep_through + 1:phase_index(job.status) + 1]:
        column = ENTRY_STAMPS.get(status)
        if column and getattr(job, column):
            fields[column] = None
    # Returning to picking means it is no longer finished
    if phase_index(to_status) <= phase_index("picking"):
        if job.picking_completed_at:
            fields["picking_completed_at"] = None
    return fields


def staging_date(job: Job, lead_days: int) -> Optional[date]:
    """First day the yard should start staging materials for ``job``."""
    if not job.scheduled_date:
        return None
    scheduled = date.fromisoformat(job.scheduled_date[:10])
    return scheduled - timedelta(days=lead_days)


def yard_snapshot(job: Job) -> YardSnapshot:
    return YardSnapshot(
        job_id=job.id,
        job_number=job.job_number,
        status=job.status,
        scheduled_date=job.scheduled_date,
        phase_index=phase_index(job.status),
        stamps={column: getattr(job, column) for column in PHASE_FIELDS},
    )
