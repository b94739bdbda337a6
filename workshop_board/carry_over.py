"""End-of-day processing for job orders.

At the close of a day every job order that is still open is marked as
carried over: it loses its technician and time slot and waits to be
re-plotted on a later day. A job is open when it is not carried over yet
and either belongs to an earlier day without a finished status, or belongs
to the closing day with an on-going or on-hold status. Jobs that are
already carried over are never selected again, which makes repeated runs
for the same day harmless.
"""

import logging
from datetime import date, datetime
from typing import List, Tuple

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from .models import JobOrder, WorkshopSnapshot
from .schemas import JobOrderOut
from .workflow import FINISHED_STATUSES, ON_HOLD_STATUSES

logger = logging.getLogger(__name__)

OPEN_STATUSES_TODAY = ("OG", "WP", "UA", "QI", "HC", "HW", "HI")
UNASSIGNED_TIME = "00:00"


def find_open_jobs(db: Session, day: date, include_day: bool = True) -> List[JobOrder]:
    earlier = and_(JobOrder.date < day, JobOrder.status.notin_(FINISHED_STATUSES))
    if include_day:
        condition = or_(earlier, and_(JobOrder.date == day, JobOrder.status.in_(OPEN_STATUSES_TODAY)))
    else:
        condition = earlier
    return (
        db.query(JobOrder)
        .filter(JobOrder.carried_over.is_(False), condition)
        .order_by(JobOrder.id)
        .all()
    )


def mark_carried_over(jobs: List[JobOrder]) -> None:
    for job in jobs:
        # reassign the list so the JSON column is flagged dirty
        job.carry_over_chain = list(job.carry_over_chain or []) + [
            {"jobId": job.id, "date": job.date.isoformat(), "status": job.status}
        ]
        job.original_job_id = job.original_job_id or job.id
        job.carried_over = True
        job.source_type = "carry-over"
        job.assigned_technician_id = None
        job.time_start = UNASSIGNED_TIME
        job.time_end = UNASSIGNED_TIME


def day_statistics(jobs: List[JobOrder]) -> dict:
    return {
        "totalJobs": len(jobs),
        "onGoing": sum(1 for j in jobs if j.status == "OG"),
        "forRelease": sum(1 for j in jobs if j.status == "FR"),
        "onHold": sum(1 for j in jobs if j.status in ON_HOLD_STATUSES),
        "carriedOver": sum(1 for j in jobs if j.carried_over),
        "important": sum(1 for j in jobs if j.is_important),
        "qualityInspection": sum(1 for j in jobs if j.status == "QI"),
        "finishedUnclaimed": sum(1 for j in jobs if j.status in ("FU", "CP")),
    }


def end_of_day(db: Session, day: date, user_id: int) -> Tuple[WorkshopSnapshot, List[JobOrder]]:
    """Snapshot the day and carry its open jobs over.

    The snapshot records the day as it was before marking. A second run for
    the same day replaces the snapshot and finds nothing left to mark.
    """
    day_jobs = db.query(JobOrder).filter(JobOrder.date == day).order_by(JobOrder.id).all()
    open_jobs = find_open_jobs(db, day)

    statistics = day_statistics(day_jobs)
    snapshot_jobs = [JobOrderOut.model_validate(j).model_dump(mode="json", by_alias=True) for j in day_jobs]
    carry_over_jobs = [
        {
            "id": j.id,
            "jobNumber": j.job_number,
            "plateNumber": j.plate_number,
            "status": j.status,
            "reason": f"Status: {j.status} - Not completed by end of day",
        }
        for j in open_jobs
    ]

    db.query(WorkshopSnapshot).filter(WorkshopSnapshot.date == day).delete(synchronize_session=False)
    snapshot = WorkshopSnapshot(
        date=day,
        snapshot_date=datetime.utcnow(),
        created_by_id=user_id,
        job_orders=snapshot_jobs,
        statistics=statistics,
        carry_over_jobs=carry_over_jobs,
    )
    db.add(snapshot)

    mark_carried_over(open_jobs)
    db.commit()
    db.refresh(snapshot)
    for job in open_jobs:
        db.refresh(job)

    logger.info("End of day %s: %d jobs, %d carried over", day, len(day_jobs), len(open_jobs))
    return snapshot, open_jobs


def check_carry_over(db: Session, day: date) -> List[JobOrder]:
    """Carry over unfinished jobs from days before ``day`` only."""
    open_jobs = find_open_jobs(db, day, include_day=False)
    mark_carried_over(open_jobs)
    db.commit()
    for job in open_jobs:
        db.refresh(job)
    return open_jobs
