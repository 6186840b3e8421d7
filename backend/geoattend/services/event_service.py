"""Attendance event fan-out."""
import json
import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Callable, List

from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

ATTENDANCE_MARKED = 'class-attendance-marked'


@dataclass(frozen=True)
class AttendanceMarkedEvent:
    class_id: str
    student_id: str
    timestamp: datetime
    type: str = ATTENDANCE_MARKED

    def to_dict(self):
        data = asdict(self)
        data['timestamp'] = self.timestamp.isoformat()
        return data


class AttendanceEventBus:
    """
    Deliver attendance events to in-process subscribers and, if a Redis
    client is given, to a pub/sub channel for other processes and tabs.

    Delivery is best-effort: the attendance write has already committed.
    """

    def __init__(self, redis_client=None, channel: str = ATTENDANCE_MARKED):
        self.redis_client = redis_client
        self.channel = channel
        self._subscribers: List[Callable[[AttendanceMarkedEvent], None]] = []

    def subscribe(self, handler: Callable[[AttendanceMarkedEvent], None]) -> Callable[[], None]:
        """Register a handler. Returns a function that removes it."""
        self._subscribers.append(handler)

        def unsubscribe():
            if handler in self._subscribers:
                self._subscribers.remove(handler)

        return unsubscribe

    def publish(self, event: AttendanceMarkedEvent) -> None:
        for handler in list(self._subscribers):
            try:
                handler(event)
            except Exception:
                logger.exception("Attendance event handler %r failed", handler)

        if self.redis_client is not None:
            try:
                self.redis_client.publish(self.channel, json.dumps(event.to_dict()))
            except RedisError as e:
                logger.warning("Could not publish %s to Redis: %s", event.type, e)
