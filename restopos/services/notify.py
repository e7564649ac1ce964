"""
Tenant-scoped notification fan-out.

The hub is created by the application lifespan and lives on ``app.state.hub``.
Delivery is best-effort and at-most-once: nothing is queued for listeners that
are not connected, and a listener that fails to accept a message is dropped.
Clients re-fetch after reconnecting.
"""
import asyncio
import json
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    ORDER_CREATED = "order:created"
    ORDER_STATUS_UPDATED = "order:statusUpdated"
    CHAT_MESSAGE = "chat:message"
    TICKET_CREATED = "ticket:created"
    TICKET_UPDATED = "ticket:updated"
    TICKET_MESSAGE = "ticket:message"
    SETTINGS_UPDATED = "settings:updated"


@dataclass
class Event:
    type: EventType
    restaurant_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    conversation_id: str | None = None

    def to_message(self) -> str:
        body = {"type": self.type.value, "restaurantId": self.restaurant_id, **self.payload}
        if self.conversation_id:
            body["conversationId"] = self.conversation_id
        return json.dumps(body, default=str)


class Listener(Protocol):
    restaurant_id: str
    user_id: str
    conversation_ids: set[str]

    def deliver(self, message: str) -> None: ...


class QueueListener:
    """A WebSocket connection's inbox; ``deliver`` may be called from any thread."""

    def __init__(self, restaurant_id: str, user_id: str, conversation_ids: set[str],
                 loop: asyncio.AbstractEventLoop):
        self.restaurant_id = restaurant_id
        self.user_id = user_id
        self.conversation_ids = conversation_ids
        self.loop = loop
        self.queue: asyncio.Queue[str] = asyncio.Queue()

    def deliver(self, message: str) -> None:
        self.loop.call_soon_threadsafe(self.queue.put_nowait, message)


class NotificationHub:
    def __init__(self):
        self._listeners: dict[str, set[Listener]] = {}
        self._lock = threading.Lock()

    def register(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.setdefault(listener.restaurant_id, set()).add(listener)
        logger.info(f"Listener connected: restaurant={listener.restaurant_id}, user={listener.user_id}, "
                    f"conversations={len(listener.conversation_ids)}")

    def unregister(self, listener: Listener) -> None:
        with self._lock:
            bucket = self._listeners.get(listener.restaurant_id)
            if bucket is None:
                return
            bucket.discard(listener)
            if not bucket:
                del self._listeners[listener.restaurant_id]
        logger.info(f"Listener disconnected: restaurant={listener.restaurant_id}, user={listener.user_id}")

    def join_conversation(self, restaurant_id: str, user_id: str, conversation_id: str) -> None:
        """Let already-connected sessions of ``user_id`` receive a newly joined conversation."""
        with self._lock:
            for listener in self._listeners.get(restaurant_id, ()):
                if listener.user_id == user_id:
                    listener.conversation_ids.add(conversation_id)

    def listener_count(self, restaurant_id: str | None = None) -> int:
        with self._lock:
            if restaurant_id is not None:
                return len(self._listeners.get(restaurant_id, ()))
            return sum(len(b) for b in self._listeners.values())

    def publish(self, event: Event) -> int:
        with self._lock:
            targets = list(self._listeners.get(event.restaurant_id, ()))

        message = event.to_message()
        sent = 0
        for listener in targets:
            if event.type is EventType.CHAT_MESSAGE and event.conversation_id \
                    and event.conversation_id not in listener.conversation_ids:
                continue
            try:
                listener.deliver(message)
                sent += 1
            except Exception:
                # a closed event loop or broken socket; the listener is gone
                logger.warning(f"Dropping listener for user {listener.user_id}", exc_info=True)
                self.unregister(listener)

        logger.debug(f"Broadcast {event.type.value} to {sent} listeners in restaurant {event.restaurant_id}")
        return sent

    def close(self) -> None:
        with self._lock:
            self._listeners.clear()
