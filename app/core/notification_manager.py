"""
SSE Queue Notification Manager
Pushes "queue changed" hints to staff terminals watching a department's queue.

Events carry no authoritative state. A terminal that receives one re-reads the
department queue; a terminal that misses one catches up on the next.
"""
import asyncio
import json
import logging
from datetime import datetime
from itertools import count
from typing import AsyncGenerator, Dict, Optional

from app.core.config import settings

logger = logging.getLogger(__name__)


class Subscription:
    """One terminal's mailbox for a department"""

    def __init__(self, subscriber_id: int, department_id: int, loop: asyncio.AbstractEventLoop, maxsize: int):
        self.subscriber_id = subscriber_id
        self.department_id = department_id
        self.loop = loop
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.connected_at = datetime.now()

    def deliver(self, event: dict) -> None:
        # Runs on the subscriber's loop
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            # Hints already waiting force a re-fetch; dropping this one loses nothing
            logger.debug(f"Subscriber {self.subscriber_id} mailbox full, dropping hint")


class QueueNotificationManager:
    """
    Manages SSE subscriptions keyed by department id.
    Publishing is thread-safe so synchronous request handlers can call it.
    """

    def __init__(self, queue_size: Optional[int] = None, keepalive_seconds: Optional[float] = None):
        self.queue_size = queue_size or settings.SSE_QUEUE_SIZE
        self.keepalive_seconds = keepalive_seconds or settings.SSE_KEEPALIVE_SECONDS

        # {department_id: {subscriber_id: Subscription}}
        self.subscriptions: Dict[int, Dict[int, Subscription]] = {}
        self._ids = count(1)

    def subscribe(self, department_id: int) -> Subscription:
        """Register a mailbox bound to the running event loop"""
        loop = asyncio.get_running_loop()
        subscription = Subscription(next(self._ids), department_id, loop, self.queue_size)
        self.subscriptions.setdefault(department_id, {})[subscription.subscriber_id] = subscription
        logger.info(f"Terminal {subscription.subscriber_id} subscribed to department {department_id}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscribers = self.subscriptions.get(subscription.department_id)
        if not subscribers:
            return
        subscribers.pop(subscription.subscriber_id, None)
        if not subscribers:
            del self.subscriptions[subscription.department_id]
        logger.info(f"Terminal {subscription.subscriber_id} unsubscribed from department {subscription.department_id}")

    def publish(self, department_id: int, reason: str, appointment_id: Optional[int] = None) -> int:
        """
        Tell every terminal watching `department_id` to re-fetch.

        Returns:
            Number of subscribers the hint was scheduled for
        """
        event = {
            "department_id": department_id,
            "reason": reason,
            "appointment_id": appointment_id,
            "timestamp": datetime.now().isoformat(),
        }

        sent_count = 0
        for subscription in list(self.subscriptions.get(department_id, {}).values()):
            try:
                subscription.loop.call_soon_threadsafe(subscription.deliver, event)
                sent_count += 1
            except RuntimeError as e:
                # Loop already closed: the terminal is gone
                logger.warning(f"Dropping subscriber {subscription.subscriber_id}: {e}")
                self.unsubscribe(subscription)

        logger.debug(f"Queue hint '{reason}' sent to {sent_count} terminal(s) in department {department_id}")
        return sent_count

    async def department_event_stream(self, department_id: int) -> AsyncGenerator:
        """
        Generate SSE stream for a department queue.
        Yields 'connected' once, then 'queue_changed' hints and 'ping' keepalives.
        """
        subscription = self.subscribe(department_id)

        try:
            yield {
                "event": "connected",
                "data": json.dumps({
                    "message": "Connected to queue stream",
                    "department_id": department_id,
                    "timestamp": datetime.now().isoformat()
                })
            }

            while True:
                try:
                    event = await asyncio.wait_for(subscription.queue.get(), timeout=self.keepalive_seconds)
                    yield {
                        "event": "queue_changed",
                        "data": json.dumps(event)
                    }
                except asyncio.TimeoutError:
                    yield {
                        "event": "ping",
                        "data": json.dumps({"timestamp": datetime.now().isoformat()})
                    }

        except asyncio.CancelledError:
            logger.info(f"Terminal {subscription.subscriber_id} for department {department_id} disconnected")
            raise
        finally:
            self.unsubscribe(subscription)

    def get_stats(self) -> dict:
        """Get connection statistics"""
        return {
            "total_connections": sum(len(subs) for subs in self.subscriptions.values()),
            "departments": {
                department_id: len(subs) for department_id, subs in self.subscriptions.items()
            },
        }


# Global notification manager instance
notification_manager = QueueNotificationManager()
