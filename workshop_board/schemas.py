import datetime as dt
import re
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .workflow import JOB_STATUSES

HHMM = re.compile(r"^([0-1][0-9]|2[0-3]):[0-5][0-9]$")
EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PLACEHOLDER_TIME = "00:00"

Role = Literal["administrator", "job-controller", "technician", "service-advisor", "superadmin"]
ManagedRole = Literal["administrator", "job-controller", "technician", "service-advisor"]
TechnicianLevel = Literal["untrained", "level-0", "level-1", "level-2", "level-3"]
JobStatus = Literal[JOB_STATUSES]


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


def _check_email(value: Optional[str]) -> Optional[str]:
    if value is not None and not EMAIL.match(value):
        raise ValueError("invalid email address")
    return value


def _check_hhmm(value: str) -> str:
    if not HHMM.match(value):
        raise ValueError("time must be HH:MM")
    return value


# ────────────────────────────── SHARED ──────────────────────────────

class TimeRange(CamelModel):
    start: str
    end: str


class TimeRangeIn(TimeRange):
    @field_validator("start", "end")
    @classmethod
    def valid_time(cls, value):
        return _check_hhmm(value)

    @model_validator(mode="after")
    def ordered(self):
        if self.start == PLACEHOLDER_TIME and self.end == PLACEHOLDER_TIME:
            return self
        if self.start >= self.end:
            raise ValueError("timeRange start must be before end")
        return self


class JobItem(CamelModel):
    description: str = Field(min_length=1)
    status: Literal["Finished", "Unfinished"]


class Part(CamelModel):
    name: str = Field(min_length=1)
    availability: Literal["Available", "Unavailable"]


class BreakTime(CamelModel):
    description: str = Field(min_length=1)
    start_time: str
    end_time: str

    @field_validator("start_time", "end_time")
    @classmethod
    def valid_time(cls, value):
        return _check_hhmm(value)


class UserRef(CamelModel):
    id: int
    name: str
    email: str
    level: Optional[str] = None


class Message(CamelModel):
    message: str


class Ok(CamelModel):
    ok: bool = True


# ────────────────────────────── AUTH ──────────────────────────────

class LoginRequest(CamelModel):
    email: Optional[str] = None
    username: Optional[str] = None
    password: str = Field(min_length=6)

    email_format = field_validator("email")(_check_email)

    @model_validator(mode="after")
    def email_or_username(self):
        if not self.email and not self.username:
            raise ValueError("Either email or username is required")
        return self


class UserProjection(CamelModel):
    name: str
    email: str
    username: Optional[str] = None
    role: str
    level: Optional[str] = None
    picture_url: Optional[str] = None


class LoginResponse(CamelModel):
    token: str
    user: UserProjection


class Token(CamelModel):
    token: str


class VerifiedUser(CamelModel):
    id: int
    name: str
    email: str
    username: Optional[str] = None
    role: str


class VerifyResponse(CamelModel):
    user: VerifiedUser


# ────────────────────────────── USERS ──────────────────────────────

class SessionInfo(CamelModel):
    id: str
    role: str


class SessionInfoResponse(CamelModel):
    user: SessionInfo


class UserOut(CamelModel):
    id: int
    name: str
    email: str
    username: Optional[str] = None
    role: str
    level: Optional[str] = None
    picture_url: Optional[str] = None
    break_times: List[BreakTime] = []


class UserList(CamelModel):
    users: List[UserOut]


class UserCreate(CamelModel):
    name: str = Field(min_length=1)
    username: Optional[str] = Field(default=None, min_length=1)
    email: str
    password: str = Field(min_length=6)
    role: ManagedRole
    level: Optional[TechnicianLevel] = None
    picture_url: Optional[str] = None

    email_format = field_validator("email")(_check_email)


class UserCreated(CamelModel):
    id: int


class UserUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[str] = None
    password: Optional[str] = Field(default=None, min_length=6)
    role: Optional[ManagedRole] = None
    level: Optional[TechnicianLevel] = None
    picture_url: Optional[str] = None
    break_times: Optional[List[BreakTime]] = None

    email_format = field_validator("email")(_check_email)


class UserUpdated(CamelModel):
    ok: bool = True
    user: UserOut


# ────────────────────────────── APPOINTMENTS ──────────────────────────────

class AppointmentCreate(CamelModel):
    assigned_technician: int
    service_advisor: int
    plate_number: str = Field(min_length=1)
    time_range: TimeRangeIn
    date: Optional[dt.date] = None


class AppointmentUpdate(CamelModel):
    assigned_technician: Optional[int] = None
    service_advisor: Optional[int] = None
    plate_number: Optional[str] = Field(default=None, min_length=1)
    time_range: Optional[TimeRangeIn] = None
    date: Optional[dt.date] = None
    no_show: Optional[bool] = None


class AppointmentOut(CamelModel):
    id: int
    assigned_technician_id: int
    assigned_technician: Optional[UserRef] = None
    service_advisor_id: Optional[int] = None
    service_advisor: Optional[UserRef] = None
    created_by: Optional[UserRef] = None
    plate_number: str
    time_range: TimeRange
    date: dt.date
    no_show: bool
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None


class AppointmentEnvelope(CamelModel):
    appointment: AppointmentOut


class AppointmentList(CamelModel):
    appointments: List[AppointmentOut]


class ConflictCheck(CamelModel):
    time_range: TimeRangeIn
    assigned_technician: int


class ConflictingJob(CamelModel):
    id: int
    job_number: str
    plate_number: str
    time_range: TimeRange
    status: str
    source_type: str
    carried_over: bool
    assigned_technician: Optional[UserRef] = None
    service_advisor: Optional[UserRef] = None


class ConflictReport(CamelModel):
    has_conflicts: bool
    conflicting_jobs: List[ConflictingJob]


class ResolveConflicts(CamelModel):
    conflicting_job_ids: List[int]


class ResolvedJob(CamelModel):
    id: int
    job_number: str
    status: str


class ConflictsResolved(CamelModel):
    message: str
    updated_jobs: List[ResolvedJob]


class NoShowDeleted(CamelModel):
    message: str
    deleted_count: int


# ────────────────────────────── JOB ORDERS ──────────────────────────────

class JobOrderCreate(CamelModel):
    job_number: str = Field(min_length=1)
    assigned_technician: int
    service_advisor: int
    plate_number: str = Field(min_length=1)
    vin: str = Field(min_length=1, max_length=14)
    time_range: TimeRangeIn
    job_list: List[JobItem]
    parts: Optional[List[Part]] = None
    date: Optional[dt.date] = None
    status: Optional[JobStatus] = None


class JobOrderFromAppointment(CamelModel):
    job_number: str = Field(min_length=1)
    vin: str = Field(min_length=1, max_length=14)
    assigned_technician: int
    service_advisor: int
    job_list: List[JobItem]
    parts: Optional[List[Part]] = None
    time_range: Optional[TimeRangeIn] = None
    actual_end_time: Optional[str] = None


class JobOrderUpdate(CamelModel):
    assigned_technician: Optional[int] = None
    service_advisor: Optional[int] = None
    plate_number: Optional[str] = None
    vin: Optional[str] = Field(default=None, max_length=14)
    time_range: Optional[TimeRangeIn] = None
    actual_end_time: Optional[str] = None
    job_list: Optional[List[JobItem]] = None
    parts: Optional[List[Part]] = None
    status: Optional[JobStatus] = None
    date: Optional[dt.date] = None
    carried_over: Optional[bool] = None
    is_important: Optional[bool] = None
    qi_status: Optional[Literal["pending", "approved", "rejected"]] = None
    hold_customer_remarks: Optional[str] = None
    sublet_remarks: Optional[str] = None


class CarryOverLink(CamelModel):
    job_id: int
    date: dt.date
    status: str


class JobOrderOut(CamelModel):
    id: int
    job_number: str
    created_by: Optional[UserRef] = None
    assigned_technician_id: Optional[int] = None
    assigned_technician: Optional[UserRef] = None
    service_advisor_id: Optional[int] = None
    service_advisor: Optional[UserRef] = None
    plate_number: str
    vin: str
    time_range: TimeRange
    actual_end_time: Optional[str] = None
    job_list: List[JobItem] = []
    parts: List[Part] = []
    status: str
    date: dt.date
    original_created_date: Optional[dt.datetime] = None
    source_type: str
    carried_over: bool
    is_important: bool
    qi_status: Optional[str] = None
    hold_customer_remarks: Optional[str] = None
    sublet_remarks: Optional[str] = None
    original_job_id: Optional[int] = None
    carry_over_chain: List[CarryOverLink] = []
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None


class JobOrderEnvelope(CamelModel):
    job_order: JobOrderOut


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int
    has_next_page: bool
    has_prev_page: bool


class JobOrderPage(CamelModel):
    job_orders: List[JobOrderOut]
    pagination: Pagination


class JobQueues(CamelModel):
    queues: Dict[str, List[JobOrderOut]]


class EndOfDayRequest(CamelModel):
    date: Optional[dt.date] = None


class SnapshotSummary(CamelModel):
    id: int
    date: dt.date
    total_jobs: int
    carry_over_count: int


class EndOfDayResponse(CamelModel):
    message: str
    snapshot: SnapshotSummary
    carry_over_jobs: List[JobOrderOut]


class CarryOverResponse(CamelModel):
    message: str
    count: int
    jobs: List[JobOrderOut]


class SnapshotOut(CamelModel):
    id: int
    date: dt.date
    snapshot_date: dt.datetime
    created_by: Optional[UserRef] = None
    job_orders: List[dict] = []
    statistics: dict = {}
    carry_over_jobs: List[dict] = []


class SnapshotEnvelope(CamelModel):
    snapshot: SnapshotOut


class SnapshotList(CamelModel):
    snapshots: List[SnapshotOut]


# ────────────────────────────── SCHEDULING ──────────────────────────────

class AvailableTechnicians(CamelModel):
    technicians: List[UserRef]


class WalkInSlot(CamelModel):
    start_time: str
    end_time: str
    duration_highlight: str
    daily_hours_remaining: float


class WorkshopSlot(CamelModel):
    start_time: str
    end_time: str
    duration: int


class TechnicianWalkIns(CamelModel):
    technician: UserRef
    available_slots: List[WalkInSlot]
    current_daily_hours: float
    daily_hours_remaining: float


class TechnicianWorkshopSlots(CamelModel):
    technician: UserRef
    available_slots: List[WorkshopSlot]
    current_daily_hours: float
    daily_hours_remaining: float


class WalkInSlots(CamelModel):
    technician_slots: List[TechnicianWalkIns]


class WorkshopSlots(CamelModel):
    technician_slots: List[TechnicianWorkshopSlots]


class SlotJob(JobOrderOut):
    original_duration: int
    can_fit: bool
    suggested_duration: int


class JobsForSlot(CamelModel):
    jobs: List[SlotJob]
    available_minutes: int
    time_slot: TimeRange


class DashboardStats(CamelModel):
    total: int
    on_going: int
    for_release: int
    on_hold: int
    carried_over: int
    important: int
    quality_inspection: int
    finished_unclaimed: int
    average_completed_per_day: float


class Dashboard(CamelModel):
    stats: DashboardStats
    carried_over_jobs: List[JobOrderOut]
    important_jobs: List[JobOrderOut]
    anomaly_jobs: List[JobOrderOut]
