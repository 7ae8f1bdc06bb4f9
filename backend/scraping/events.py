"""
Progress notification sinks.

The coordinator emits after session creation, each session update and
each processing-log row:

    session.created   {"session": {...}}
    session.updated   {"session": {...}, "progress": {...}}
    session.finished  {"session": {...}}
    log.created       {"log": {...}}

Emitting never blocks the run loop and never fails it: use safe_emit().
"""
import json
import logging
import os
import queue
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

SESSION_CREATED = "session.created"
SESSION_UPDATED = "session.updated"
SESSION_FINISHED = "session.finished"
LOG_CREATED = "log.created"

PROGRESS_CHANNEL = "scraping:progress"

# Seconds; a dead Redis must not hold up the run loop
REDIS_TIMEOUT = 0.5


class EventSink(ABC):
    """Receives progress events from the coordinator."""

    @abstractmethod
    def emit(self, event: str, payload: Dict[str, Any]) -> None:
        """Deliver one event. Must not block for long."""


class NullEventSink(EventSink):
    def emit(self, event, payload):
        pass


class CallbackEventSink(EventSink):
    """Calls a function for every event (tests, in-process listeners)."""

    def __init__(self, callback: Callable[[str, Dict[str, Any]], None]):
        self.callback = callback

    def emit(self, event, payload):
        self.callback(event, payload)


class QueueEventSink(EventSink):
    """
    Bounded in-memory queue. When the queue is full the event is dropped:
    a slow consumer must never stall a run.
    """

    def __init__(self, maxsize: int = 1000):
        self.queue = queue.Queue(maxsize=maxsize)
        self.dropped = 0

    def emit(self, event, payload):
        try:
            self.queue.put_nowait((event, payload))
        except queue.Full:
            self.dropped += 1

    def drain(self):
        """Return and remove everything queued so far."""
        events = []
        while True:
            try:
                events.append(self.queue.get_nowait())
            except queue.Empty:
                return events


class RedisEventSink(EventSink):
    """Publish events as JSON on a Redis channel (lazy connect via REDIS_URL)."""

    def __init__(self, redis_url: Optional[str] = None, channel: str = PROGRESS_CHANNEL):
        self.redis_url = redis_url or os.environ.get("REDIS_URL")
        self.channel = channel
        self._redis = None

    @property
    def redis(self):
        """Get Redis client (lazy init)."""
        if self._redis is None and self.redis_url:
            try:
                import redis
                self._redis = redis.from_url(
                    self.redis_url,
                    socket_connect_timeout=REDIS_TIMEOUT,
                    socket_timeout=REDIS_TIMEOUT,
                )
                self._redis.ping()
            except Exception as e:
                logger.warning(f"Progress events disabled, Redis unavailable: {e}")
                self._redis = False  # Sentinel to prevent retries
        return self._redis if self._redis else None

    def emit(self, event, payload):
        client = self.redis
        if client is None:
            return
        message = json.dumps({"event": event, **payload}, default=str)
        try:
            client.publish(self.channel, message)
        except Exception as e:
            logger.warning(f"Progress events disabled after publish failure: {e}")
            self._redis = False


def safe_emit(sink: Optional[EventSink], event: str, payload: Dict[str, Any]) -> None:
    """Emit, logging and swallowing any sink failure."""
    if sink is None:
        return
    try:
        sink.emit(event, payload)
    except Exception as e:
        logger.warning(f"Event sink failed for {event}: {e}")


def default_event_sink() -> EventSink:
    if os.environ.get("REDIS_URL"):
        return RedisEventSink()
    return NullEventSink()
