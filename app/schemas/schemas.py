from __future__ import annotations
from pydantic import BaseModel, Field, field_validator
from datetime import date, datetime, time
from typing import Optional, List


def check_days_of_week(value: Optional[List[int]]) -> Optional[List[int]]:
    """Weekday numbers 0 (Sunday) .. 6 (Saturday), de-duplicated and sorted"""
    if value is None:
        return value
    if not value:
        raise ValueError("At least one day of week is required")
    if any(day < 0 or day > 6 for day in value):
        raise ValueError("Days of week must be between 0 (Sunday) and 6 (Saturday)")
    return sorted(set(value))


# Department schemas
class DepartmentBase(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    display_order: int = 0


class DepartmentCreate(DepartmentBase):
    pass


class DepartmentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    display_order: Optional[int] = None
    is_active: Optional[bool] = None


class DepartmentSettingsBase(BaseModel):
    operating_start: time
    operating_end: time
    lunch_break_start: time
    lunch_break_end: time
    can_receive_appointments: bool
    allow_walk_ins: bool
    daily_appointment_limit: int = Field(..., ge=0)
    allow_same_day: bool
    min_days_advance: int = Field(..., ge=0)
    max_days_advance: int = Field(..., ge=0)
    require_qr_checkin: bool


class DepartmentSettingsUpdate(BaseModel):
    """Partial settings update; unspecified fields keep their value"""
    operating_start: Optional[time] = None
    operating_end: Optional[time] = None
    lunch_break_start: Optional[time] = None
    lunch_break_end: Optional[time] = None
    can_receive_appointments: Optional[bool] = None
    allow_walk_ins: Optional[bool] = None
    daily_appointment_limit: Optional[int] = Field(None, ge=0)
    allow_same_day: Optional[bool] = None
    min_days_advance: Optional[int] = Field(None, ge=0)
    max_days_advance: Optional[int] = Field(None, ge=0)
    require_qr_checkin: Optional[bool] = None


class DepartmentSettingsResponse(DepartmentSettingsBase):
    id: int
    department_id: int

    class Config:
        from_attributes = True


class DepartmentResponse(DepartmentBase):
    id: int
    is_active: bool
    created_at: datetime
    settings: Optional[DepartmentSettingsResponse] = None

    class Config:
        from_attributes = True


# Time slot schemas
class SlotGenerateRequest(BaseModel):
    """Bulk slot generation; replaces every existing slot of the department"""
    duration_minutes: int = Field(..., gt=0, le=24 * 60)
    max_appointments: Optional[int] = Field(None, ge=1)
    day_of_week: Optional[List[int]] = None
    confirm_replace: bool = False

    @field_validator('day_of_week')
    @classmethod
    def validate_days(cls, v):
        return check_days_of_week(v)


class TimeSlotUpdate(BaseModel):
    slot_start: Optional[time] = None
    slot_end: Optional[time] = None
    max_appointments: Optional[int] = Field(None, ge=1)
    day_of_week: Optional[List[int]] = None

    @field_validator('day_of_week')
    @classmethod
    def validate_days(cls, v):
        return check_days_of_week(v)


class TimeSlotResponse(BaseModel):
    id: int
    department_id: int
    slot_start: time
    slot_end: time
    max_appointments: int
    day_of_week: List[int]
    is_active: bool

    class Config:
        from_attributes = True


class SlotGenerateResponse(BaseModel):
    generated: int
    slots: List[TimeSlotResponse]


class SlotAvailability(BaseModel):
    slot_id: int
    slot_start: time
    slot_end: time
    max_appointments: int
    booked: int
    remaining: int
    available: bool


class AvailabilityResponse(BaseModel):
    department_id: int
    date: date
    closed: bool
    slots: List[SlotAvailability]


# Closed date schemas
class ClosedDateCreate(BaseModel):
    closed_date: date
    reason: Optional[str] = None


class ClosedDateResponse(BaseModel):
    id: int
    department_id: int
    closed_date: date
    reason: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


# Appointment schemas
class AppointmentCreate(BaseModel):
    """Scheduled booking into a slot"""
    slot_id: int
    appointment_date: date
    full_name: str = Field(..., min_length=1)
    contact_number: Optional[str] = None
    citizen_id: Optional[str] = None
    purpose: Optional[str] = None


class WalkInCreate(BaseModel):
    full_name: str
    contact_number: str
    purpose: str


class VersionedAction(BaseModel):
    """Mutation body; expected_version is the version the terminal last displayed"""
    expected_version: Optional[int] = None


class CheckInRequest(VersionedAction):
    qr_code: Optional[str] = None


class PriorityUpdate(VersionedAction):
    is_priority: bool = True


class TransferRequest(VersionedAction):
    target_department_id: int


class RescheduleRequest(VersionedAction):
    appointment_date: date
    slot_id: int


class NotesUpdate(VersionedAction):
    notes: Optional[str] = None


class AppointmentResponse(BaseModel):
    id: int
    department_id: int
    citizen_id: Optional[str] = None
    full_name: str
    contact_number: Optional[str] = None
    appointment_date: date
    slot_start: Optional[time] = None
    slot_end: Optional[time] = None
    status: str
    ticket_number: str
    purpose: Optional[str] = None
    notes: Optional[str] = None
    qr_code: Optional[str] = None
    is_walk_in: bool
    is_priority: bool
    priority_set_at: Optional[datetime] = None
    checked_in_at: Optional[datetime] = None
    serving_started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    version: int
    created_at: datetime

    class Config:
        from_attributes = True


class AppointmentListResponse(BaseModel):
    appointments: List[AppointmentResponse]
    total: int
    sort_by: str
    sort_dir: str


# Queue and metrics schemas
class QueueCounts(BaseModel):
    waiting: int
    serving: int
    completed: int
    no_show: int
    cancelled: int
    total: int


class QueueMetrics(BaseModel):
    average_wait_minutes: int
    average_service_minutes: int
    wait_samples: int
    service_samples: int
    counts: QueueCounts
    generated_at: datetime


class MetricsResponse(QueueMetrics):
    department_id: int
    date_from: date
    date_to: date


class QueueView(BaseModel):
    """Everything a staff terminal needs to draw today's queue"""
    department_id: int
    date: date
    now_serving: List[AppointmentResponse]
    waiting: List[AppointmentResponse]  # checked in, in call-next order
    pending: List[AppointmentResponse]
    metrics: QueueMetrics


class NowServingEntry(BaseModel):
    id: int
    department_id: int
    department_name: str
    ticket_number: str
    serving_started_at: Optional[datetime] = None


class NowServingResponse(BaseModel):
    date: date
    serving: List[NowServingEntry]


class MessageResponse(BaseModel):
    message: str


class ActivityLogResponse(BaseModel):
    id: int
    department_id: Optional[int] = None
    staff_id: Optional[str] = None
    action: str
    entity_type: Optional[str] = None
    entity_id: Optional[int] = None
    description: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
