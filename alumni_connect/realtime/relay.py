"""Fan-out of committed message inserts to open chat subscriptions."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)

INSERT = "INSERT"


@dataclass(frozen=True)
class MessageEvent:
    connection_id: int
    record: dict
    type: str = INSERT

    @property
    def message_id(self) -> int:
        return self.record["id"]

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "connection_id": self.connection_id,
            "record": self.record,
        }


Callback = Callable[[MessageEvent], None]


@dataclass(eq=False)
class Subscription:
    connection_id: int
    callback: Callback
    event: str = INSERT
    active: bool = field(default=True)

    def deliver(self, event: MessageEvent) -> None:
        if self.active:
            self.callback(event)


class MessageRelay:
    """
    Registers per-connection subscriptions and pushes message inserts to
    them in publish order.

    Callbacks run on the publishing thread. Consumers that live on an event
    loop must hop back onto it themselves.
    """

    def __init__(self) -> None:
        self._subscriptions: Dict[int, List[Subscription]] = {}
        self._lock = threading.Lock()

    def subscribe(
        self,
        connection_id: int,
        callback: Callback,
        event: str = INSERT,
    ) -> Subscription:
        if event != INSERT:
            raise ValueError(f"Unsupported event kind: {event}")

        subscription = Subscription(
            connection_id=connection_id,
            callback=callback,
            event=event,
        )
        with self._lock:
            self._subscriptions.setdefault(connection_id, []).append(subscription)
        logger.debug(f"Subscribed to messages for connection {connection_id}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.active = False
        with self._lock:
            subs = self._subscriptions.get(subscription.connection_id)
            if not subs:
                return
            try:
                subs.remove(subscription)
            except ValueError:
                return
            if not subs:
                self._subscriptions.pop(subscription.connection_id, None)
        logger.debug(
            f"Unsubscribed from messages for connection {subscription.connection_id}"
        )

    def publish(self, record: dict) -> MessageEvent:
        event = MessageEvent(connection_id=record["connection_id"], record=record)
        with self._lock:
            targets = list(self._subscriptions.get(event.connection_id, []))

        for subscription in targets:
            try:
                subscription.deliver(event)
            except Exception:
                logger.exception(
                    f"Subscriber failed on message {event.message_id} "
                    f"for connection {event.connection_id}"
                )
        return event

    def subscriber_count(self, connection_id: int) -> int:
        with self._lock:
            return len(self._subscriptions.get(connection_id, []))


message_relay = MessageRelay()
"""Singleton relay shared by the message store and chat sockets."""
