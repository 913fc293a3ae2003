"""Live fan-out of telemetry envelopes to SSE and WebSocket subscribers."""

import asyncio
import itertools
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Dict, Set

from .errors import SubscriberDeliveryFailure
from .schemas import Envelope

logger = logging.getLogger(__name__)

_CLOSED = object()
_ids = itertools.count(1)


@dataclass(eq=False)
class Subscription:
    """One subscriber's bounded inbox."""

    queue: asyncio.Queue
    id: int = field(default_factory=lambda: next(_ids))
    closed: bool = False

    def deliver(self, message: Dict[str, Any]) -> None:
        if self.closed:
            raise SubscriberDeliveryFailure(f"Subscriber {self.id} is closed")
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            raise SubscriberDeliveryFailure(f"Subscriber {self.id} is not keeping up") from None

    def close(self) -> None:
        """Mark closed and wake the reader; messages already queued are still read."""
        if self.closed:
            return
        self.closed = True
        try:
            self.queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            # Reader is being dropped anyway; make room for the end marker
            self.queue.get_nowait()
            self.queue.put_nowait(_CLOSED)

    async def messages(self) -> AsyncGenerator[Dict[str, Any], None]:
        """Yield messages until the subscription is closed."""
        while True:
            message = await self.queue.get()
            if message is _CLOSED:
                return
            yield message


@dataclass
class BroadcastHub:
    """Connect-and-receive feed: no replay, no request framing."""

    queue_size: int = 100
    subscribers: Set[Subscription] = field(default_factory=set)

    def subscribe(self) -> Subscription:
        """Create a new subscription."""
        subscription = Subscription(queue=asyncio.Queue(maxsize=self.queue_size))
        self.subscribers.add(subscription)
        logger.info(f"Subscriber {subscription.id} connected ({len(self.subscribers)} total)")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscription."""
        if subscription in self.subscribers:
            self.subscribers.discard(subscription)
            logger.info(f"Subscriber {subscription.id} disconnected")
        subscription.close()

    def broadcast(self, message: Dict[str, Any]) -> int:
        """
        Deliver message to every current subscriber without waiting on any of them.

        Returns:
            Number of subscribers the message was delivered to
        """
        delivered = 0
        # Snapshot: subscribers may connect or disconnect while we deliver
        for subscription in list(self.subscribers):
            try:
                subscription.deliver(message)
                delivered += 1
            except SubscriberDeliveryFailure as e:
                logger.warning(f"Dropping subscriber: {e}")
                self.unsubscribe(subscription)
        return delivered

    def publish(self, envelope: Envelope) -> int:
        """Broadcast one telemetry envelope."""
        return self.broadcast({
            "kind": "reading",
            "payload": envelope.model_dump(mode="json"),
        })

    def close(self) -> None:
        """Release every subscriber."""
        for subscription in list(self.subscribers):
            self.unsubscribe(subscription)

    async def stream(self, subscription: Subscription) -> AsyncGenerator[str, None]:
        """Generate SSE messages from a subscription."""
        try:
            async for message in subscription.messages():
                yield f"data: {json.dumps(message)}\n\n"
        except asyncio.CancelledError:
            pass
