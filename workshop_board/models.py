from datetime import date, datetime

from sqlalchemy import JSON, Boolean, Column, Date, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from .database import Base

ROLES = ("administrator", "job-controller", "technician", "service-advisor", "superadmin")
TECHNICIAN_LEVELS = ("untrained", "level-0", "level-1", "level-2", "level-3")


class TimeRangeMixin:
    @property
    def time_range(self):
        return {"start": self.time_start, "end": self.time_end}


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    username = Column(String, unique=True, index=True, nullable=True)
    password_hash = Column(String, nullable=False)
    role = Column(String, nullable=False)
    level = Column(String, nullable=True)  # technicians only
    picture_url = Column(String, nullable=True)
    break_times = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Appointment(TimeRangeMixin, Base):
    __tablename__ = "appointments"
    id = Column(Integer, primary_key=True, index=True)
    assigned_technician_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    service_advisor_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    plate_number = Column(String, nullable=False, index=True)
    time_start = Column(String, nullable=False)
    time_end = Column(String, nullable=False)
    date = Column(Date, nullable=False, default=date.today, index=True)
    no_show = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    assigned_technician = relationship("User", foreign_keys=[assigned_technician_id])
    service_advisor = relationship("User", foreign_keys=[service_advisor_id])
    created_by = relationship("User", foreign_keys=[created_by_id])


class JobOrder(TimeRangeMixin, Base):
    __tablename__ = "job_orders"
    id = Column(Integer, primary_key=True, index=True)
    job_number = Column(String, unique=True, index=True, nullable=False)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    # empty while a carried over job waits for reassignment
    assigned_technician_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    service_advisor_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    plate_number = Column(String, nullable=False)
    vin = Column(String, nullable=False)
    time_start = Column(String, nullable=False, default="00:00")
    time_end = Column(String, nullable=False, default="00:00")
    actual_end_time = Column(String, nullable=True)
    job_list = Column(JSON, nullable=False, default=list)
    parts = Column(JSON, nullable=False, default=list)
    status = Column(String, nullable=False, default="OG", index=True)
    date = Column(Date, nullable=False, default=date.today, index=True)
    original_created_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    source_type = Column(String, nullable=False, default="direct")
    carried_over = Column(Boolean, nullable=False, default=False, index=True)
    is_important = Column(Boolean, nullable=False, default=False)
    qi_status = Column(String, nullable=True)
    hold_customer_remarks = Column(String, nullable=True)
    sublet_remarks = Column(String, nullable=True)
    original_job_id = Column(Integer, nullable=True)
    carry_over_chain = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    assigned_technician = relationship("User", foreign_keys=[assigned_technician_id])
    service_advisor = relationship("User", foreign_keys=[service_advisor_id])
    created_by = relationship("User", foreign_keys=[created_by_id])


class WorkshopSnapshot(Base):
    __tablename__ = "workshop_snapshots"
    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, unique=True, index=True, nullable=False)
    snapshot_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    job_orders = Column(JSON, nullable=False, default=list)
    statistics = Column(JSON, nullable=False, default=dict)
    carry_over_jobs = Column(JSON, nullable=False, default=list)

    created_by = relationship("User", foreign_keys=[created_by_id])
