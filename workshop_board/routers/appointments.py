from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import models, schemas
from ..carry_over import UNASSIGNED_TIME
from ..database import get_db
from ..dependencies import SessionUser, get_current_user, require_role
from ..errors import Conflict, NotFound
from ..logs import audit
from ..scheduling import conflicting_job_orders, ensure_daily_limit, ensure_no_overlap, get_user_with_role
from ..workflow import all_parts_unavailable, initial_status

router = APIRouter(prefix="/appointments", tags=["Appointments"])

schedulers = require_role("administrator", "job-controller")


def _get_appointment(db: Session, appointment_id: int) -> models.Appointment:
    appointment = db.get(models.Appointment, appointment_id)
    if appointment is None:
        raise NotFound("Appointment not found")
    return appointment


@router.get("", response_model=schemas.AppointmentList)
def list_appointments(
    date: Optional[date] = None,
    technician: Optional[int] = None,
    assigned_to_me: bool = Query(False, alias="assignedToMe"),
    user: SessionUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(models.Appointment)
    if technician is not None:
        query = query.filter(models.Appointment.assigned_technician_id == technician)
    if assigned_to_me:
        query = query.filter(models.Appointment.assigned_technician_id == user.id)
    if date is not None:
        query = query.filter(models.Appointment.date == date)
    appointments = query.order_by(models.Appointment.date, models.Appointment.time_start).all()
    return {"appointments": appointments}


# registered before /{appointment_id} so the literal path wins
@router.delete("/delete-all-no-show", response_model=schemas.NoShowDeleted)
def delete_all_no_show(user: SessionUser = Depends(schedulers), db: Session = Depends(get_db)):
    deleted = (
        db.query(models.Appointment)
        .filter(models.Appointment.no_show.is_(True))
        .delete(synchronize_session=False)
    )
    db.commit()
    audit("No-show appointments deleted", user, count=deleted)
    return {
        "message": f"Deleted {deleted} no-show appointments successfully",
        "deleted_count": deleted,
    }


@router.get("/{appointment_id}", response_model=schemas.AppointmentEnvelope)
def get_appointment(
    appointment_id: int,
    user: SessionUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return {"appointment": _get_appointment(db, appointment_id)}


@router.post("", response_model=schemas.AppointmentEnvelope, status_code=201)
def create_appointment(
    payload: schemas.AppointmentCreate,
    user: SessionUser = Depends(schedulers),
    db: Session = Depends(get_db),
):
    get_user_with_role(db, payload.assigned_technician, "technician", "technician")
    get_user_with_role(db, payload.service_advisor, "service-advisor", "service advisor")

    day = payload.date or date.today()
    time_range = payload.time_range
    ensure_no_overlap(db, payload.assigned_technician, day, time_range.start, time_range.end)

    new = models.Appointment(
        assigned_technician_id=payload.assigned_technician,
        service_advisor_id=payload.service_advisor,
        created_by_id=user.id,
        plate_number=payload.plate_number.upper(),
        time_start=time_range.start,
        time_end=time_range.end,
        date=day,
    )
    db.add(new)
    db.commit()
    db.refresh(new)
    return {"appointment": new}


@router.put("/{appointment_id}", response_model=schemas.AppointmentEnvelope)
def update_appointment(
    appointment_id: int,
    payload: schemas.AppointmentUpdate,
    user: SessionUser = Depends(schedulers),
    db: Session = Depends(get_db),
):
    appointment = _get_appointment(db, appointment_id)
    data = payload.model_dump(exclude_unset=True)

    if payload.assigned_technician is not None:
        get_user_with_role(db, payload.assigned_technician, "technician", "technician")
    if "service_advisor" in data:
        get_user_with_role(db, payload.service_advisor, "service-advisor", "service advisor")

    if payload.assigned_technician is not None or payload.time_range is not None or payload.date is not None:
        time_range = payload.time_range or schemas.TimeRange(**appointment.time_range)
        ensure_no_overlap(
            db,
            payload.assigned_technician or appointment.assigned_technician_id,
            payload.date or appointment.date,
            time_range.start,
            time_range.end,
            exclude_appointment=appointment.id,
        )

    if payload.assigned_technician is not None:
        appointment.assigned_technician_id = payload.assigned_technician
    if "service_advisor" in data:
        appointment.service_advisor_id = payload.service_advisor
    if payload.plate_number:
        appointment.plate_number = payload.plate_number.upper()
    if payload.time_range is not None:
        appointment.time_start = payload.time_range.start
        appointment.time_end = payload.time_range.end
    if payload.date is not None:
        appointment.date = payload.date
    if payload.no_show is not None:
        appointment.no_show = payload.no_show

    db.commit()
    db.refresh(appointment)
    return {"appointment": appointment}


@router.post("/{appointment_id}/create-job-order", response_model=schemas.JobOrderEnvelope, status_code=201)
def create_job_order_from_appointment(
    appointment_id: int,
    payload: schemas.JobOrderFromAppointment,
    user: SessionUser = Depends(schedulers),
    db: Session = Depends(get_db),
):
    appointment = _get_appointment(db, appointment_id)

    job_number = payload.job_number.upper()
    if db.query(models.JobOrder).filter(models.JobOrder.job_number == job_number).first():
        raise Conflict("Job number already exists")

    get_user_with_role(db, payload.assigned_technician, "technician", "technician")
    get_user_with_role(db, payload.service_advisor, "service-advisor", "service advisor")

    time_range = payload.time_range or schemas.TimeRange(**appointment.time_range)
    ensure_daily_limit(db, payload.assigned_technician, appointment.date, time_range.start, time_range.end)

    parts = [p.model_dump() for p in payload.parts or []]
    job = models.JobOrder(
        job_number=job_number,
        created_by_id=user.id,
        assigned_technician_id=None if all_parts_unavailable(parts) else payload.assigned_technician,
        service_advisor_id=payload.service_advisor,
        plate_number=appointment.plate_number,
        vin=payload.vin.upper(),
        time_start=time_range.start,
        time_end=time_range.end,
        actual_end_time=payload.actual_end_time,
        job_list=[item.model_dump() for item in payload.job_list],
        parts=parts,
        status=initial_status(None, parts),
        date=appointment.date,
        original_created_date=datetime.utcnow(),
        source_type="appointment",
    )
    db.add(job)
    db.delete(appointment)
    db.commit()
    db.refresh(job)
    audit("Job order created from appointment", user, job_id=job.id, job_number=job.job_number)
    return {"job_order": job}


@router.post("/{appointment_id}/check-conflicts", response_model=schemas.ConflictReport)
def check_conflicts(
    appointment_id: int,
    payload: schemas.ConflictCheck,
    user: SessionUser = Depends(schedulers),
    db: Session = Depends(get_db),
):
    appointment = _get_appointment(db, appointment_id)
    time_range = payload.time_range
    jobs = conflicting_job_orders(db, payload.assigned_technician, appointment.date, time_range.start, time_range.end)
    return {"has_conflicts": bool(jobs), "conflicting_jobs": jobs}


@router.post("/{appointment_id}/resolve-conflicts", response_model=schemas.ConflictsResolved)
def resolve_conflicts(
    appointment_id: int,
    payload: schemas.ResolveConflicts,
    user: SessionUser = Depends(schedulers),
    db: Session = Depends(get_db),
):
    """Unassign the conflicting job orders so the appointment can take the slot."""
    updated = []
    for job_id in payload.conflicting_job_ids:
        job = db.get(models.JobOrder, job_id)
        if job is None:
            continue
        job.status = "UA"
        job.assigned_technician_id = None
        job.time_start = UNASSIGNED_TIME
        job.time_end = UNASSIGNED_TIME
        updated.append(job)
    db.commit()
    audit("Appointment conflicts resolved", user, appointment_id=appointment_id, job_ids=[j.id for j in updated])
    return {"message": "Conflicts resolved successfully", "updated_jobs": updated}


@router.delete("/{appointment_id}", response_model=schemas.Message)
def delete_appointment(
    appointment_id: int,
    user: SessionUser = Depends(schedulers),
    db: Session = Depends(get_db),
):
    appointment = _get_appointment(db, appointment_id)
    db.delete(appointment)
    db.commit()
    return {"message": "Appointment deleted successfully"}
