from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from . import models
from .errors import BadRequest, Conflict
from .workflow import FINISHED_STATUSES

DAILY_HOUR_LIMIT = 7.5


def minutes(hhmm: str) -> int:
    hours, mins = hhmm.split(":")
    return int(hours) * 60 + int(mins)


def duration_hours(start: str, end: str) -> float:
    return (minutes(end) - minutes(start)) / 60


def duration_minutes(start: str, end: str) -> int:
    return minutes(end) - minutes(start)


def get_user_with_role(db: Session, user_id: Optional[int], role: str, label: str) -> models.User:
    user = db.get(models.User, user_id) if user_id is not None else None
    if user is None or user.role != role:
        raise BadRequest(f"Invalid {label} assigned")
    return user


def _overlapping(db: Session, model, technician_id: int, day: date, start: str, end: str, exclude_id=None):
    # zero padded HH:MM strings compare in time order
    query = db.query(model).filter(
        model.assigned_technician_id == technician_id,
        model.date == day,
        model.time_start < end,
        model.time_end > start,
    )
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    return query.first()


def ensure_no_overlap(
    db: Session,
    technician_id: int,
    day: date,
    start: str,
    end: str,
    exclude_appointment: Optional[int] = None,
    exclude_job_order: Optional[int] = None,
) -> None:
    """Reject a slot that collides with the technician's appointments or job orders."""
    appointment = _overlapping(db, models.Appointment, technician_id, day, start, end, exclude_appointment)
    if appointment is not None:
        raise Conflict(
            "Technician already has an appointment during this time",
            details=f"Conflicting appointment: {appointment.plate_number} "
            f"({appointment.time_start}-{appointment.time_end})",
        )
    job = _overlapping(db, models.JobOrder, technician_id, day, start, end, exclude_job_order)
    if job is not None:
        raise Conflict(
            "Technician already has a job order during this time",
            details=f"Conflicting job order: {job.job_number} ({job.time_start}-{job.time_end})",
        )


def ensure_daily_limit(db: Session, technician_id: int, day: date, start: str, end: str) -> None:
    jobs = (
        db.query(models.JobOrder)
        .filter(models.JobOrder.assigned_technician_id == technician_id, models.JobOrder.date == day)
        .all()
    )
    current = sum(duration_hours(j.time_start, j.time_end) for j in jobs)
    new = duration_hours(start, end)
    total = current + new
    if total > DAILY_HOUR_LIMIT:
        raise Conflict(
            f"Technician daily limit exceeded. Current: {current:.1f}h, New job: {new:.1f}h, "
            f"Total: {total:.1f}h (Limit: {DAILY_HOUR_LIMIT}h)"
        )


# ────────────────────────────── SLOTS ──────────────────────────────

WORKDAY_START = 7 * 60
WORKDAY_END = 18 * 60
SLOT_MINUTES = 30


def format_hhmm(total_minutes: int) -> str:
    return f"{total_minutes // 60:02d}:{total_minutes % 60:02d}"


def overlaps(start: int, end: int, other_start: int, other_end: int) -> bool:
    return start < other_end and end > other_start


def slot_starts() -> List[int]:
    """Half hour starts from 07:00 up to 18:30; slots ending after 18:00 are dropped later."""
    return list(range(WORKDAY_START, WORKDAY_END + 2 * SLOT_MINUTES, SLOT_MINUTES))


def _busy(ranges, start: int, end: int) -> bool:
    return any(overlaps(start, end, minutes(s), minutes(e)) for s, e in ranges)


def _on_break(break_times, start: int, end: int) -> bool:
    return _busy([(b["startTime"], b["endTime"]) for b in break_times or []], start, end)


def available_technicians(db: Session, day: date, start: str, end: str) -> List[models.User]:
    """Technicians without a job order overlapping ``start``-``end`` on ``day``."""
    busy_ids = {
        row.assigned_technician_id
        for row in db.query(models.JobOrder.assigned_technician_id)
        .filter(
            models.JobOrder.date == day,
            models.JobOrder.assigned_technician_id.isnot(None),
            models.JobOrder.time_start < end,
            models.JobOrder.time_end > start,
        )
        .all()
    }
    query = db.query(models.User).filter(models.User.role == "technician")
    if busy_ids:
        query = query.filter(models.User.id.notin_(busy_ids))
    return query.order_by(models.User.name).all()


def _technician_days(db: Session, day: date):
    """Yield each technician with their booked ranges and job order hours on ``day``."""
    technicians = db.query(models.User).filter(models.User.role == "technician").order_by(models.User.name).all()
    jobs = (
        db.query(models.JobOrder)
        .filter(models.JobOrder.date == day, models.JobOrder.assigned_technician_id.isnot(None))
        .all()
    )
    appointments = db.query(models.Appointment).filter(models.Appointment.date == day).all()

    for technician in technicians:
        own_jobs = [j for j in jobs if j.assigned_technician_id == technician.id]
        booked = [(j.time_start, j.time_end) for j in own_jobs]
        booked += [(a.time_start, a.time_end) for a in appointments if a.assigned_technician_id == technician.id]
        hours = sum(duration_hours(j.time_start, j.time_end) for j in own_jobs)
        yield technician, booked, hours


def _day_summary(technician: models.User, slots: list, hours: float) -> dict:
    return {
        "technician": technician,
        "available_slots": slots,
        "current_daily_hours": hours,
        "daily_hours_remaining": max(0.0, DAILY_HOUR_LIMIT - hours),
    }


def walk_in_slots(db: Session, day: date, duration: int) -> List[dict]:
    """Start times where a walk-in of ``duration`` minutes fits each technician's day."""
    result = []
    for technician, booked, hours in _technician_days(db, day):
        remaining = max(0.0, DAILY_HOUR_LIMIT - hours)
        slots = []
        if hours + duration / 60 <= DAILY_HOUR_LIMIT:
            for start in slot_starts():
                end = start + duration
                if end > WORKDAY_END or _busy(booked, start, end) or _on_break(technician.break_times, start, end):
                    continue
                slots.append(
                    {
                        "start_time": format_hhmm(start),
                        "end_time": format_hhmm(end),
                        "duration_highlight": f"{duration} min",
                        "daily_hours_remaining": remaining,
                    }
                )
        result.append(_day_summary(technician, slots, hours))
    return result


def workshop_slots(db: Session, day: date) -> List[dict]:
    """Free half hour cells of the workshop timetable, per technician."""
    result = []
    for technician, booked, hours in _technician_days(db, day):
        slots = []
        for start in slot_starts():
            end = start + SLOT_MINUTES
            if end > WORKDAY_END or _busy(booked, start, end) or _on_break(technician.break_times, start, end):
                continue
            slots.append({"start_time": format_hhmm(start), "end_time": format_hhmm(end), "duration": SLOT_MINUTES})
        result.append(_day_summary(technician, slots, hours))
    return result


def jobs_for_slot(db: Session, start: str, end: str) -> Tuple[int, List[dict]]:
    """Unassigned job orders that could be plotted into ``start``-``end``."""
    available = minutes(end) - minutes(start)
    jobs = (
        db.query(models.JobOrder)
        .filter(
            or_(
                and_(
                    models.JobOrder.assigned_technician_id.is_(None),
                    models.JobOrder.status.notin_(("CP", "FR", "FU", "QI")),
                ),
                models.JobOrder.status == "UA",
            )
        )
        .order_by(
            models.JobOrder.is_important.desc(),
            models.JobOrder.carried_over.desc(),
            models.JobOrder.created_at.desc(),
        )
        .all()
    )
    fits = []
    for job in jobs:
        length = duration_minutes(job.time_start, job.time_end)
        fits.append(
            {
                "job": job,
                "original_duration": length,
                "can_fit": length <= available,
                "suggested_duration": min(length, available),
            }
        )
    return available, fits


def conflicting_job_orders(db: Session, technician_id: int, day: date, start: str, end: str) -> List[models.JobOrder]:
    """Unfinished job orders of a technician that overlap ``start``-``end`` on ``day``."""
    return (
        db.query(models.JobOrder)
        .filter(
            models.JobOrder.assigned_technician_id == technician_id,
            models.JobOrder.date == day,
            models.JobOrder.status.notin_(FINISHED_STATUSES),
            models.JobOrder.time_start < end,
            models.JobOrder.time_end > start,
        )
        .order_by(models.JobOrder.time_start)
        .all()
    )
