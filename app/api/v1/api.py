from fastapi import APIRouter
from app.api.v1.endpoints import (
    departments, time_slots, closed_dates, appointments, notifications, activity_logs
)

api_router = APIRouter()

api_router.include_router(departments.router, prefix="/departments", tags=["departments"])
api_router.include_router(time_slots.router, tags=["time-slots"])
api_router.include_router(closed_dates.router, tags=["closed-dates"])
api_router.include_router(appointments.router, tags=["appointments"])
api_router.include_router(notifications.router, tags=["notifications"])
api_router.include_router(activity_logs.router, tags=["activity-logs"])
