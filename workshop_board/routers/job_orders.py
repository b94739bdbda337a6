import math
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session

from .. import models, schemas
from ..carry_over import UNASSIGNED_TIME, check_carry_over, end_of_day
from ..database import get_db
from ..dependencies import SessionUser, get_current_user, require_role
from ..errors import BadRequest, Conflict, NotFound
from ..logs import audit
from ..scheduling import (
    available_technicians,
    ensure_daily_limit,
    ensure_no_overlap,
    get_user_with_role,
    jobs_for_slot,
    walk_in_slots,
    workshop_slots,
)
from ..workflow import FINISHED_STATUSES, ON_HOLD_STATUSES, VALID_STATUS_TRANSITIONS, all_parts_unavailable, can_transition, initial_status

router = APIRouter(prefix="/job-orders", tags=["Job Orders"])

schedulers = require_role("administrator", "job-controller")

COMPLETION_WINDOW_DAYS = 30
ANOMALY_STATUSES = ON_HOLD_STATUSES + ("QI", "FU", "CP")

# fields a client may explicitly clear with null
NULLABLE_UPDATES = (
    "assigned_technician",
    "service_advisor",
    "actual_end_time",
    "qi_status",
    "hold_customer_remarks",
    "sublet_remarks",
)


def _get_job_order(db: Session, ref: str) -> models.JobOrder:
    """Resolve a job order by job number, falling back to the numeric id.

    Job numbers win so an all-digit job number never resolves to the row
    that happens to have the same id.
    """
    job = db.query(models.JobOrder).filter(models.JobOrder.job_number == ref.upper()).first()
    if job is None and ref.isdigit():
        job = db.get(models.JobOrder, int(ref))
    if job is None:
        raise NotFound("Job order not found")
    return job


def _saved(db: Session, job: models.JobOrder) -> dict:
    db.commit()
    db.refresh(job)
    return {"job_order": job}


# ────────────────────────────── QUERIES ──────────────────────────────

@router.get("", response_model=schemas.JobOrderPage)
def list_job_orders(
    status: Optional[str] = None,
    technician: Optional[int] = None,
    date: Optional[date] = None,
    search: Optional[str] = None,
    assigned_to_me: bool = Query(False, alias="assignedToMe"),
    carried_over: Optional[bool] = Query(None, alias="carriedOver"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=500),
    user: SessionUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(models.JobOrder)
    if status:
        query = query.filter(models.JobOrder.status == status)
    if technician is not None:
        query = query.filter(models.JobOrder.assigned_technician_id == technician)
    if assigned_to_me:
        query = query.filter(models.JobOrder.assigned_technician_id == user.id)
    if date is not None:
        query = query.filter(models.JobOrder.date == date)
    if carried_over is not None:
        query = query.filter(models.JobOrder.carried_over.is_(carried_over))
    if search:
        pattern = f"%{search}%"
        technician_ids = [
            t.id
            for t in db.query(models.User.id)
            .filter(models.User.role == "technician", models.User.name.ilike(pattern))
            .all()
        ]
        clauses = [
            models.JobOrder.job_number.ilike(pattern),
            models.JobOrder.plate_number.ilike(pattern),
            models.JobOrder.vin.ilike(pattern),
        ]
        if technician_ids:
            clauses.append(models.JobOrder.assigned_technician_id.in_(technician_ids))
        query = query.filter(or_(*clauses))

    total = query.count()
    jobs = (
        query.order_by(models.JobOrder.created_at.desc(), models.JobOrder.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    total_pages = math.ceil(total / limit)
    return {
        "job_orders": jobs,
        "pagination": {
            "current_page": page,
            "total_pages": total_pages,
            "total_items": total,
            "items_per_page": limit,
            "has_next_page": page < total_pages,
            "has_prev_page": page > 1,
        },
    }


@router.get("/queues/by-status", response_model=schemas.JobQueues)
def queues_by_status(
    statuses: str,
    limit: int = Query(100, ge=1),
    user: SessionUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    queues = {}
    for status in [s.strip() for s in statuses.split(",") if s.strip()]:
        query = db.query(models.JobOrder)
        if status == "QI":
            query = query.filter(models.JobOrder.status == "QI", models.JobOrder.qi_status == "pending")
        elif status == "carriedOver":
            query = query.filter(
                models.JobOrder.carried_over.is_(True),
                models.JobOrder.status.notin_(FINISHED_STATUSES),
            )
        else:
            query = query.filter(models.JobOrder.status == status)
        queues[status] = query.order_by(models.JobOrder.created_at.desc()).limit(limit).all()
    return {"queues": queues}


# ────────────────────────────── SCHEDULING ──────────────────────────────

def _check_slot_query(day: Optional[date], start_time: Optional[str], end_time: Optional[str]) -> None:
    if day is None or not start_time or not end_time:
        raise BadRequest("Date, startTime, and endTime are required")
    if not (schemas.HHMM.match(start_time) and schemas.HHMM.match(end_time)):
        raise BadRequest("startTime and endTime must be HH:MM")


@router.get("/technicians/available", response_model=schemas.AvailableTechnicians)
def technicians_available(
    day: Optional[date] = Query(None, alias="date"),
    start_time: Optional[str] = Query(None, alias="startTime"),
    end_time: Optional[str] = Query(None, alias="endTime"),
    user: SessionUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _check_slot_query(day, start_time, end_time)
    return {"technicians": available_technicians(db, day, start_time, end_time)}


@router.get("/walk-in-slots", response_model=schemas.WalkInSlots)
def get_walk_in_slots(
    day: Optional[date] = Query(None, alias="date"),
    duration: Optional[int] = Query(None, ge=1),
    user: SessionUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if day is None or not duration:
        raise BadRequest("Date and duration are required")
    return {"technician_slots": walk_in_slots(db, day, duration)}


@router.get("/workshop-slots", response_model=schemas.WorkshopSlots)
def get_workshop_slots(
    day: Optional[date] = Query(None, alias="date"),
    user: SessionUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if day is None:
        raise BadRequest("Date is required")
    return {"technician_slots": workshop_slots(db, day)}


@router.get("/available-for-slot", response_model=schemas.JobsForSlot)
def available_for_slot(
    day: Optional[date] = Query(None, alias="date"),
    start_time: Optional[str] = Query(None, alias="startTime"),
    end_time: Optional[str] = Query(None, alias="endTime"),
    user: SessionUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _check_slot_query(day, start_time, end_time)
    available, fits = jobs_for_slot(db, start_time, end_time)
    jobs = [schemas.SlotJob(**schemas.JobOrderOut.model_validate(fit.pop("job")).model_dump(), **fit) for fit in fits]
    return {"jobs": jobs, "available_minutes": available, "time_slot": {"start": start_time, "end": end_time}}


@router.get("/dashboard", response_model=schemas.Dashboard)
def dashboard(user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
    jobs = db.query(models.JobOrder)
    newest = models.JobOrder.created_at.desc()

    def count(*criteria) -> int:
        return jobs.filter(*criteria).count()

    # averaged over the whole window, days without completions included
    since = datetime.utcnow() - timedelta(days=COMPLETION_WINDOW_DAYS)
    completed = count(models.JobOrder.status == "CP", models.JobOrder.updated_at >= since)
    stats = {
        "total": jobs.count(),
        "on_going": count(models.JobOrder.status == "OG"),
        "for_release": count(models.JobOrder.status == "FR"),
        "on_hold": count(models.JobOrder.status.in_(ON_HOLD_STATUSES)),
        "carried_over": count(models.JobOrder.carried_over.is_(True)),
        "important": count(models.JobOrder.is_important.is_(True)),
        "quality_inspection": count(models.JobOrder.status == "QI"),
        "finished_unclaimed": count(models.JobOrder.status.in_(("FU", "CP"))),
        "average_completed_per_day": round(completed / COMPLETION_WINDOW_DAYS, 1),
    }
    return {
        "stats": stats,
        "carried_over_jobs": jobs.filter(models.JobOrder.carried_over.is_(True)).order_by(newest).limit(50).all(),
        "important_jobs": jobs.filter(models.JobOrder.is_important.is_(True)).order_by(newest).limit(50).all(),
        "anomaly_jobs": jobs.filter(models.JobOrder.status.in_(ANOMALY_STATUSES)).order_by(newest).limit(100).all(),
    }


@router.get("/snapshots", response_model=schemas.SnapshotList)
def list_snapshots(
    limit: int = Query(30, ge=1),
    user: SessionUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    snapshots = (
        db.query(models.WorkshopSnapshot)
        .order_by(models.WorkshopSnapshot.date.desc())
        .limit(limit)
        .all()
    )
    return {"snapshots": snapshots}


@router.get("/snapshot/{day}", response_model=schemas.SnapshotEnvelope)
def get_snapshot(day: date, user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
    snapshot = db.query(models.WorkshopSnapshot).filter(models.WorkshopSnapshot.date == day).first()
    if snapshot is None:
        raise NotFound("No snapshot found for this date")
    return {"snapshot": snapshot}


@router.get("/{ref}", response_model=schemas.JobOrderEnvelope)
def get_job_order(ref: str, user: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"job_order": _get_job_order(db, ref)}


# ────────────────────────────── END OF DAY ──────────────────────────────

@router.post("/end-of-day", response_model=schemas.EndOfDayResponse)
def run_end_of_day(
    payload: Optional[schemas.EndOfDayRequest] = Body(None),
    user: SessionUser = Depends(require_role("administrator", "job-controller", "superadmin")),
    db: Session = Depends(get_db),
):
    day = (payload.date if payload else None) or date.today()
    snapshot, carried = end_of_day(db, day, user.id)
    audit("End of day processed", user, date=day.isoformat(), carried_over=len(carried))
    return {
        "message": "End of day processing completed successfully",
        "snapshot": {
            "id": snapshot.id,
            "date": snapshot.date,
            "total_jobs": snapshot.statistics["totalJobs"],
            "carry_over_count": len(carried),
        },
        "carry_over_jobs": carried,
    }


@router.post("/check-carry-over", response_model=schemas.CarryOverResponse)
def run_check_carry_over(user: SessionUser = Depends(schedulers), db: Session = Depends(get_db)):
    carried = check_carry_over(db, date.today())
    return {
        "message": "Unfinished jobs from previous days marked as carry-over successfully",
        "count": len(carried),
        "jobs": carried,
    }


# ────────────────────────────── MUTATIONS ──────────────────────────────

@router.post("", response_model=schemas.JobOrderEnvelope, status_code=201)
def create_job_order(
    payload: schemas.JobOrderCreate,
    user: SessionUser = Depends(schedulers),
    db: Session = Depends(get_db),
):
    job_number = payload.job_number.upper()
    if db.query(models.JobOrder).filter(models.JobOrder.job_number == job_number).first():
        raise Conflict("Job number already exists")

    get_user_with_role(db, payload.assigned_technician, "technician", "technician")
    get_user_with_role(db, payload.service_advisor, "service-advisor", "service advisor")

    day = payload.date or date.today()
    start, end = payload.time_range.start, payload.time_range.end
    ensure_no_overlap(db, payload.assigned_technician, day, start, end)
    ensure_daily_limit(db, payload.assigned_technician, day, start, end)

    parts = [p.model_dump() for p in payload.parts or []]
    job = models.JobOrder(
        job_number=job_number,
        created_by_id=user.id,
        # nobody can work on a job whose parts are all missing
        assigned_technician_id=None if all_parts_unavailable(parts) else payload.assigned_technician,
        service_advisor_id=payload.service_advisor,
        plate_number=payload.plate_number.upper(),
        vin=payload.vin.upper(),
        time_start=start,
        time_end=end,
        job_list=[item.model_dump() for item in payload.job_list],
        parts=parts,
        status=initial_status(payload.status, parts),
        date=day,
        original_created_date=datetime.utcnow(),
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    audit("Job order created", user, job_id=job.id, job_number=job.job_number)
    return {"job_order": job}


@router.put("/{ref}", response_model=schemas.JobOrderEnvelope)
def update_job_order(
    ref: str,
    payload: schemas.JobOrderUpdate,
    user: SessionUser = Depends(schedulers),
    db: Session = Depends(get_db),
):
    job = _get_job_order(db, ref)
    data = {
        k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None or k in NULLABLE_UPDATES
    }

    new_status = data.get("status")
    if new_status and new_status != job.status and not can_transition(job.status, new_status):
        raise BadRequest(
            f"Invalid status transition from {job.status} to {new_status}",
            validTransitions=VALID_STATUS_TRANSITIONS.get(job.status, []),
        )

    if "parts" in data:
        parts = data["parts"]
        if parts:
            missing = any(p["availability"] == "Unavailable" for p in parts)
            if missing and data.get("status") in (None, "OG"):
                # waiting parts: the job has to be plotted again later
                data["status"] = "WP"
                data["assigned_technician"] = None
                data["time_range"] = {"start": UNASSIGNED_TIME, "end": UNASSIGNED_TIME}
            elif not missing and job.status == "WP" and not data.get("status"):
                data["status"] = "UA"
        elif job.status == "WP" and not data.get("status"):
            data["status"] = "UA"

    if data.get("status") == "UA":
        data["assigned_technician"] = None
        data["time_range"] = {"start": UNASSIGNED_TIME, "end": UNASSIGNED_TIME}

    technician_id = data.get("assigned_technician")
    if technician_id is not None:
        get_user_with_role(db, technician_id, "technician", "technician")
        if not data.get("status") and (job.status == "UA" or job.carried_over):
            data["status"] = "OG"
        if job.carried_over and data.get("carried_over") is not False:
            data["carried_over"] = True

    if data.get("service_advisor") is not None:
        get_user_with_role(db, data["service_advisor"], "service-advisor", "service advisor")

    time_range = data.get("time_range") or job.time_range
    check_technician = technician_id if "assigned_technician" in data else job.assigned_technician_id
    if check_technician is not None and time_range["start"] != time_range["end"] and (
        technician_id is not None or "time_range" in data or "date" in data
    ):
        ensure_no_overlap(
            db,
            check_technician,
            data.get("date") or job.date,
            time_range["start"],
            time_range["end"],
            exclude_job_order=job.id,
        )

    if "assigned_technician" in data:
        job.assigned_technician_id = data["assigned_technician"]
    if "service_advisor" in data:
        job.service_advisor_id = data["service_advisor"]
    if "time_range" in data:
        job.time_start = data["time_range"]["start"]
        job.time_end = data["time_range"]["end"]
    if data.get("plate_number"):
        job.plate_number = data["plate_number"].upper()
    if data.get("vin"):
        job.vin = data["vin"].upper()
    for field in (
        "actual_end_time",
        "job_list",
        "parts",
        "status",
        "date",
        "carried_over",
        "is_important",
        "qi_status",
        "hold_customer_remarks",
        "sublet_remarks",
    ):
        if field in data:
            setattr(job, field, data[field])

    result = _saved(db, job)
    audit("Job order updated", user, job_id=job.id, fields=",".join(sorted(data)))
    return result


@router.delete("/{ref}", response_model=schemas.Message)
def delete_job_order(ref: str, user: SessionUser = Depends(schedulers), db: Session = Depends(get_db)):
    job = _get_job_order(db, ref)
    db.delete(job)
    db.commit()
    audit("Job order deleted", user, job_id=job.id, job_number=job.job_number)
    return {"message": "Job order deleted successfully"}


@router.patch("/{ref}/toggle-important", response_model=schemas.JobOrderEnvelope)
def toggle_important(ref: str, user: SessionUser = Depends(schedulers), db: Session = Depends(get_db)):
    job = _get_job_order(db, ref)
    job.is_important = not job.is_important
    result = _saved(db, job)
    audit("Job order important toggled", user, job_id=job.id, important=job.is_important)
    return result


@router.patch("/{ref}/submit-qi", response_model=schemas.JobOrderEnvelope)
def submit_qi(
    ref: str,
    user: SessionUser = Depends(require_role("administrator", "job-controller", "technician")),
    db: Session = Depends(get_db),
):
    job = _get_job_order(db, ref)
    if not all(task["status"] == "Finished" for task in job.job_list):
        raise BadRequest("Cannot submit for QI: Not all tasks are finished")
    if not all(part["availability"] == "Available" for part in job.parts):
        raise BadRequest("Cannot submit for QI: Not all parts are available")
    job.status = "QI"
    job.qi_status = "pending"
    result = _saved(db, job)
    audit("Job order submitted for QI", user, job_id=job.id)
    return result


def _require_pending_qi(job: models.JobOrder) -> None:
    if job.status != "QI" or job.qi_status != "pending":
        raise BadRequest("Job order is not pending QI")


@router.patch("/{ref}/approve-qi", response_model=schemas.JobOrderEnvelope)
def approve_qi(ref: str, user: SessionUser = Depends(schedulers), db: Session = Depends(get_db)):
    job = _get_job_order(db, ref)
    _require_pending_qi(job)
    job.status = "FR"
    job.qi_status = "approved"
    result = _saved(db, job)
    audit("QI approved", user, job_id=job.id)
    return result


@router.patch("/{ref}/reject-qi", response_model=schemas.JobOrderEnvelope)
def reject_qi(ref: str, user: SessionUser = Depends(schedulers), db: Session = Depends(get_db)):
    job = _get_job_order(db, ref)
    _require_pending_qi(job)
    job.status = "OG"
    job.qi_status = "rejected"
    result = _saved(db, job)
    audit("QI rejected", user, job_id=job.id)
    return result


@router.patch("/{ref}/complete", response_model=schemas.JobOrderEnvelope)
def complete(ref: str, user: SessionUser = Depends(schedulers), db: Session = Depends(get_db)):
    job = _get_job_order(db, ref)
    if job.status != "FR":
        raise BadRequest("Job order is not marked for release")
    job.status = "FU"
    result = _saved(db, job)
    audit("Job order marked finished-unclaimed", user, job_id=job.id)
    return result


@router.patch("/{ref}/mark-complete", response_model=schemas.JobOrderEnvelope)
def mark_complete(ref: str, user: SessionUser = Depends(schedulers), db: Session = Depends(get_db)):
    job = _get_job_order(db, ref)
    if job.status != "FU":
        raise BadRequest("Job order must be in Finished Unclaimed status")
    job.status = "CP"
    result = _saved(db, job)
    audit("Job order marked complete", user, job_id=job.id)
    return result


@router.patch("/{ref}/redo", response_model=schemas.JobOrderEnvelope)
def redo(ref: str, user: SessionUser = Depends(schedulers), db: Session = Depends(get_db)):
    job = _get_job_order(db, ref)
    if job.status != "FR":
        raise BadRequest("Job order is not marked for release")
    job.status = "OG"
    job.qi_status = None
    result = _saved(db, job)
    audit("Job order redo to On Going", user, job_id=job.id)
    return result
