"""Publish/subscribe channel for dispatch pool membership changes."""
import asyncio
import logging
from collections import deque
from datetime import datetime
from typing import Deque, Dict, List, Literal, Optional, Set
from uuid import uuid4

from pydantic import BaseModel

from pharmfind.services.ordering.models import utc_now

logger = logging.getLogger(__name__)


class PoolEvent(BaseModel):
    """A delivery entered or left the available pool."""

    event_id: str
    kind: Literal["added", "removed"]
    delivery_id: str
    order_id: str
    occurred_at: datetime


class PoolSubscription:
    """One consumer's view of the pool event stream.

    Events are consumed at most once per subscription: redelivering an event
    id that was already handed out is a no-op. Only the newest max_seen ids
    are remembered. At most max_pending events wait for the consumer; past
    that the oldest waiting event is dropped.
    """

    def __init__(self, name: str, max_pending: int = 200, max_seen: int = 1000):
        self.name = name
        self.max_pending = max_pending
        self.max_seen = max_seen
        self._queue: Deque[PoolEvent] = deque()
        self._seen: Set[str] = set()
        self._seen_order: Deque[str] = deque()
        self._ready: Optional[asyncio.Event] = None

    @property
    def pending(self) -> int:
        return len(self._queue)

    @property
    def seen_count(self) -> int:
        return len(self._seen)

    def _remember(self, event_id: str) -> None:
        self._seen.add(event_id)
        self._seen_order.append(event_id)
        while len(self._seen_order) > self.max_seen:
            self._seen.discard(self._seen_order.popleft())

    def deliver(self, event: PoolEvent) -> bool:
        """Queue an event unless this subscription already received it."""
        if event.event_id in self._seen:
            return False
        self._remember(event.event_id)
        if len(self._queue) >= self.max_pending:
            dropped = self._queue.popleft()
            logger.warning(f"[POOL EVENTS] {self.name} is behind, dropped {dropped.event_id}")
        self._queue.append(event)
        if self._ready is not None:
            self._ready.set()
        return True

    async def next(self, timeout: float) -> PoolEvent:
        """Wait for the next event; raises asyncio.TimeoutError after timeout seconds."""
        while not self._queue:
            self._ready = asyncio.Event()
            await asyncio.wait_for(self._ready.wait(), timeout=timeout)
        return self._queue.popleft()

    def drain(self) -> List[PoolEvent]:
        """Take every queued event without waiting."""
        events = list(self._queue)
        self._queue.clear()
        return events

    async def wait_and_drain(self, timeout: float) -> List[PoolEvent]:
        """Take every queued event, waiting up to timeout seconds for the first one."""
        if self._queue or timeout <= 0:
            return self.drain()
        try:
            first = await self.next(timeout=timeout)
        except asyncio.TimeoutError:
            return []
        return [first] + self.drain()


class PoolEventBus:
    """Fans pool events out to every subscription."""

    def __init__(self):
        self._subscriptions: Dict[str, PoolSubscription] = {}

    def subscribe(self, name: str) -> PoolSubscription:
        """Open a subscription, replacing any earlier one with the same name."""
        subscription = PoolSubscription(name)
        self._subscriptions[name] = subscription
        logger.debug(f"[POOL EVENTS] Subscribed {name}")
        return subscription

    def subscription_for(self, name: str) -> PoolSubscription:
        """The named subscription, opened on first use."""
        subscription = self._subscriptions.get(name)
        if subscription is None:
            subscription = self.subscribe(name)
        return subscription

    def unsubscribe(self, subscription: PoolSubscription) -> None:
        if self._subscriptions.get(subscription.name) is subscription:
            del self._subscriptions[subscription.name]
            logger.debug(f"[POOL EVENTS] Unsubscribed {subscription.name}")

    def publish(self, event: PoolEvent) -> None:
        """Deliver an already-built event to every subscription."""
        for subscription in list(self._subscriptions.values()):
            subscription.deliver(event)

    def emit(self, kind: Literal["added", "removed"], delivery_id: str, order_id: str) -> PoolEvent:
        """Build and publish a new event."""
        event = PoolEvent(
            event_id=uuid4().hex,
            kind=kind,
            delivery_id=delivery_id,
            order_id=order_id,
            occurred_at=utc_now(),
        )
        logger.info(f"[POOL EVENTS] {kind} {delivery_id}")
        self.publish(event)
        return event
