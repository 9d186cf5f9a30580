"""
Queue metrics computed from the timestamps the state machine records.
Purely observational; nothing here writes to the store.
"""
import math
from datetime import datetime
from typing import Iterable, List, Optional

from app.models.models import Appointment, AppointmentStatus


def _round_minutes(total_seconds: float, samples: int) -> int:
    """Mean in whole minutes, halves rounded up"""
    if samples == 0:
        return 0
    return int(math.floor(total_seconds / samples / 60 + 0.5))


def _mean_minutes(pairs: List[tuple]) -> int:
    total = sum((end - start).total_seconds() for start, end in pairs)
    return _round_minutes(total, len(pairs))


def average_wait_minutes(appointments: Iterable[Appointment]) -> int:
    """Mean of serving_started_at - checked_in_at"""
    pairs = [
        (a.checked_in_at, a.serving_started_at)
        for a in appointments
        if a.checked_in_at and a.serving_started_at
    ]
    return _mean_minutes(pairs)


def average_service_minutes(appointments: Iterable[Appointment]) -> int:
    """Mean of completed_at - serving_started_at"""
    pairs = [
        (a.serving_started_at, a.completed_at)
        for a in appointments
        if a.serving_started_at and a.completed_at
    ]
    return _mean_minutes(pairs)


def queue_counts(appointments: Iterable[Appointment]) -> dict:
    counts = {
        "waiting": 0,
        "serving": 0,
        "completed": 0,
        "no_show": 0,
        "cancelled": 0,
        "total": 0,
    }
    for a in appointments:
        counts["total"] += 1
        if a.status in (AppointmentStatus.PENDING, AppointmentStatus.CHECKED_IN):
            counts["waiting"] += 1
        elif a.status == AppointmentStatus.SERVING:
            counts["serving"] += 1
        elif a.status == AppointmentStatus.COMPLETED:
            counts["completed"] += 1
        elif a.status == AppointmentStatus.NO_SHOW:
            counts["no_show"] += 1
        elif a.status == AppointmentStatus.CANCELLED:
            counts["cancelled"] += 1
    return counts


def summarize(appointments: Iterable[Appointment], generated_at: Optional[datetime] = None) -> dict:
    appointments = list(appointments)
    wait_samples = [a for a in appointments if a.checked_in_at and a.serving_started_at]
    service_samples = [a for a in appointments if a.serving_started_at and a.completed_at]
    return {
        "average_wait_minutes": average_wait_minutes(wait_samples),
        "average_service_minutes": average_service_minutes(service_samples),
        "wait_samples": len(wait_samples),
        "service_samples": len(service_samples),
        "counts": queue_counts(appointments),
        "generated_at": generated_at or datetime.now(),
    }
