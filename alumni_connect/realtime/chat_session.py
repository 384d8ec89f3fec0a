"""
Client-side view of one chat: history snapshot plus relayed inserts.

The relay may deliver a message more than once (reconnects, our own sends
echoing back), so every record is keyed by message id before it reaches the
ordered list.
"""
from __future__ import annotations

import bisect
import logging
import threading
import uuid
from datetime import datetime
from typing import Callable, Dict, List, Optional

from alumni_connect.realtime.relay import MessageEvent, MessageRelay, Subscription

logger = logging.getLogger(__name__)


def _order_key(record: dict):
    return (datetime.fromisoformat(record["created_at"]), record["id"])


class ChatSession:
    def __init__(
        self,
        connection_id: int,
        viewer_id: str,
        relay: MessageRelay,
        fetch_history: Callable[[], List[dict]],
        post_message: Callable[[str], dict],
    ) -> None:
        self.connection_id = connection_id
        self.viewer_id = viewer_id
        self._relay = relay
        self._fetch_history = fetch_history
        self._post_message = post_message

        self._lock = threading.RLock()
        self._messages: List[dict] = []
        self._ids: set = set()
        self._provisional: Dict[str, dict] = {}
        self._buffer: Optional[List[dict]] = None
        self._subscription: Optional[Subscription] = None
        self.closed = False

    @classmethod
    def from_store(cls, store, connection_id: int, viewer_id: str) -> "ChatSession":
        """Session backed directly by a MessageStore and its relay."""
        return cls(
            connection_id=connection_id,
            viewer_id=viewer_id,
            relay=store.relay,
            fetch_history=lambda: [
                m.to_record() for m in store.list_history(connection_id)
            ],
            post_message=lambda content: store.append(
                connection_id, viewer_id, content
            ).to_record(),
        )

    # ------------------------------------
    # Views
    # ------------------------------------
    @property
    def messages(self) -> List[dict]:
        """Confirmed messages in total order."""
        with self._lock:
            return list(self._messages)

    @property
    def provisional(self) -> List[dict]:
        with self._lock:
            return list(self._provisional.values())

    @property
    def rendered(self) -> List[dict]:
        """What the chat view shows: confirmed history, then unconfirmed sends."""
        with self._lock:
            return list(self._messages) + list(self._provisional.values())

    @property
    def latest(self) -> Optional[dict]:
        rendered = self.rendered
        return rendered[-1] if rendered else None

    def contents(self) -> List[str]:
        return [m["content"] for m in self.messages]

    # ------------------------------------
    # Lifecycle
    # ------------------------------------
    def open(self) -> "ChatSession":
        if self.closed:
            raise RuntimeError("Chat session is closed")
        self._subscribe_and_sync()
        return self

    def reconnect(self) -> None:
        """
        Treat the stream as starting fresh: resubscribe, re-fetch history and
        fill whatever was missed while disconnected.
        """
        if self.closed:
            raise RuntimeError("Chat session is closed")
        self._teardown()
        logger.info(f"Reconnecting chat for connection {self.connection_id}")
        self._subscribe_and_sync()

    def close(self) -> None:
        with self._lock:
            if self.closed:
                return
            self.closed = True
        self._teardown()

    def __enter__(self) -> "ChatSession":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()

    def _subscribe_and_sync(self) -> None:
        # Subscribe before the snapshot so inserts in between are buffered
        with self._lock:
            self._buffer = []
        self._subscription = self._relay.subscribe(self.connection_id, self.receive)

        try:
            history = self._fetch_history()
        except Exception:
            self._teardown()
            raise

        with self._lock:
            buffered, self._buffer = self._buffer or [], None
            for record in history:
                self._merge(record)
            for record in buffered:
                self._merge(record)

    def _teardown(self) -> None:
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            self._relay.unsubscribe(subscription)
        with self._lock:
            self._buffer = None

    # ------------------------------------
    # Incoming
    # ------------------------------------
    def receive(self, event: MessageEvent) -> None:
        if event.connection_id != self.connection_id:
            return
        with self._lock:
            if self.closed:
                return
            if self._buffer is not None:
                self._buffer.append(event.record)
                return
            self._merge(event.record)

    def _merge(self, record: dict) -> bool:
        if record["id"] in self._ids:
            return False
        self._ids.add(record["id"])
        bisect.insort(self._messages, record, key=_order_key)
        return True

    # ------------------------------------
    # Outgoing
    # ------------------------------------
    def send(self, content: str) -> dict:
        """
        Show the message immediately as unconfirmed, then replace it with
        the stored record. A failed send is rolled back and re-raised; it is
        never retried here.
        """
        if self.closed:
            raise RuntimeError("Chat session is closed")

        local_id = f"local-{uuid.uuid4().hex}"
        with self._lock:
            self._provisional[local_id] = {
                "id": local_id,
                "connection_id": self.connection_id,
                "sender_id": self.viewer_id,
                "content": content.strip() if content else content,
                "confirmed": False,
            }

        try:
            record = self._post_message(content)
        except Exception:
            with self._lock:
                self._provisional.pop(local_id, None)
            raise

        with self._lock:
            self._provisional.pop(local_id, None)
            # Response landed after the view went away
            if self.closed:
                return record
            self._merge(record)
        return record
