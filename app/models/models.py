from sqlalchemy import (
    Column, Integer, String, DateTime, Date, Time, Boolean, ForeignKey, Text, JSON, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship
from datetime import datetime, time
from app.core.database import Base


class AppointmentStatus:
    """Appointment status constants"""
    PENDING = "pending"
    CHECKED_IN = "checked_in"
    SERVING = "serving"
    COMPLETED = "completed"
    NO_SHOW = "no_show"
    CANCELLED = "cancelled"

    # Staff-facing alias for checked-in appointments that were never served
    MISSED = "missed"

    ALL = (PENDING, CHECKED_IN, SERVING, COMPLETED, NO_SHOW, CANCELLED)
    TERMINAL = (COMPLETED, NO_SHOW, CANCELLED)
    ACTIVE = (PENDING, CHECKED_IN, SERVING)


WEEKDAYS = [1, 2, 3, 4, 5]  # Mon-Fri, 0 = Sunday


class Department(Base):
    __tablename__ = "departments"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, unique=True)
    description = Column(Text, nullable=True)
    display_order = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.now)

    # Relationships
    settings = relationship("DepartmentSettings", back_populates="department", uselist=False, cascade="all, delete-orphan")
    time_slots = relationship("TimeSlot", back_populates="department", cascade="all, delete-orphan")
    closed_dates = relationship("ClosedDate", back_populates="department", cascade="all, delete-orphan")

    @property
    def ticket_prefix(self) -> str:
        return self.name.strip()[:1].upper() or "X"


class DepartmentSettings(Base):
    """
    Operating hours and admission rules for a department.
    Read by the slot generator and admission control; edited by administrators only.
    """
    __tablename__ = "department_settings"

    id = Column(Integer, primary_key=True, index=True)
    department_id = Column(Integer, ForeignKey("departments.id", ondelete="CASCADE"), nullable=False, unique=True)

    # Operating hours
    operating_start = Column(Time, nullable=False, default=time(8, 0))
    operating_end = Column(Time, nullable=False, default=time(17, 0))
    lunch_break_start = Column(Time, nullable=False, default=time(12, 0))
    lunch_break_end = Column(Time, nullable=False, default=time(13, 0))

    # Capacity and booking rules
    can_receive_appointments = Column(Boolean, default=False)
    allow_walk_ins = Column(Boolean, default=True)
    daily_appointment_limit = Column(Integer, default=50)
    allow_same_day = Column(Boolean, default=False)
    min_days_advance = Column(Integer, default=1)
    max_days_advance = Column(Integer, default=30)
    require_qr_checkin = Column(Boolean, default=False)

    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    department = relationship("Department", back_populates="settings")


class TimeSlot(Base):
    __tablename__ = "department_time_slots"

    id = Column(Integer, primary_key=True, index=True)
    department_id = Column(Integer, ForeignKey("departments.id", ondelete="CASCADE"), nullable=False, index=True)
    slot_start = Column(Time, nullable=False)
    slot_end = Column(Time, nullable=False)
    max_appointments = Column(Integer, default=2)
    day_of_week = Column(JSON, nullable=False, default=lambda: list(WEEKDAYS))  # 0 = Sunday .. 6 = Saturday
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.now)

    department = relationship("Department", back_populates="time_slots")


class ClosedDate(Base):
    __tablename__ = "department_closed_dates"

    id = Column(Integer, primary_key=True, index=True)
    department_id = Column(Integer, ForeignKey("departments.id", ondelete="CASCADE"), nullable=False, index=True)
    closed_date = Column(Date, nullable=False)
    reason = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.now)

    department = relationship("Department", back_populates="closed_dates")

    __table_args__ = (
        UniqueConstraint('department_id', 'closed_date', name='uq_closed_date_department'),
    )


class Appointment(Base):
    """
    One citizen visit in a department's queue.

    Status changes go through conditional updates on (status, version), see
    app.services.queue_store.conditional_update.
    """
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, index=True)

    # Citizen identity; walk-ins have no account and only carry the raw contact fields
    citizen_id = Column(String, nullable=True, index=True)
    full_name = Column(String, nullable=False)
    contact_number = Column(String, nullable=True)

    appointment_date = Column(Date, nullable=False, index=True)
    slot_start = Column(Time, nullable=True)
    slot_end = Column(Time, nullable=True)

    status = Column(String, nullable=False, default=AppointmentStatus.PENDING, index=True)
    ticket_number = Column(String, nullable=False)
    purpose = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    qr_code = Column(String, nullable=True, index=True)

    is_walk_in = Column(Boolean, default=False)
    is_priority = Column(Boolean, default=False)
    priority_set_at = Column(DateTime, nullable=True)

    checked_in_at = Column(DateTime, nullable=True)
    serving_started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    department = relationship("Department")

    __table_args__ = (
        UniqueConstraint('department_id', 'appointment_date', 'ticket_number', name='uq_appointment_ticket'),
        Index('ix_appointments_department_date_status', 'department_id', 'appointment_date', 'status'),
    )


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    department_id = Column(Integer, ForeignKey("departments.id", ondelete="CASCADE"), nullable=True, index=True)
    staff_id = Column(String, nullable=True)  # Opaque staff identifier supplied by the caller
    action = Column(String, nullable=False)  # admitted, checked_in, called, completed, no_show, cancelled, transferred, ...
    entity_type = Column(String, nullable=True)  # appointment, time_slot, closed_date, department
    entity_id = Column(Integer, nullable=True)
    description = Column(Text, nullable=True)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.now)
