"""
Queue Notifications API Endpoints

Handles:
- SSE stream of queue change hints per department
- Connection statistics
"""

from fastapi import APIRouter
from sse_starlette.sse import EventSourceResponse

from app.core.database import SessionLocal
from app.core.notification_manager import notification_manager
from app.services.queue_store import get_department

router = APIRouter()


@router.get("/departments/{department_id}/queue/stream")
async def queue_stream(department_id: int):
    """
    Server-Sent Events (SSE) stream for a department's queue.

    Events:
    - connected: sent once when the stream opens
    - queue_changed: something in the queue changed; re-fetch GET /departments/{id}/queue
    - ping: keepalive

    Usage with EventSource:
    ```javascript
    const eventSource = new EventSource('/api/v1/departments/3/queue/stream');

    eventSource.addEventListener('queue_changed', () => {
        refreshQueue();
    });
    ```
    """
    # The stream can stay open for hours; release the connection before it starts
    with SessionLocal() as db:
        get_department(db, department_id)

    async def event_generator():
        async for event in notification_manager.department_event_stream(department_id):
            yield event

    return EventSourceResponse(event_generator())


@router.get("/notifications/stream/stats")
async def get_stream_stats():
    """
    Get statistics about active SSE connections.
    Endpoint for monitoring.
    """
    return notification_manager.get_stats()
