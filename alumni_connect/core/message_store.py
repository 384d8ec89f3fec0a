import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from alumni_connect.core.errors import EmptyContent, NotAParty, NotConnected, NotFound
from alumni_connect.core.resilience import retry_read
from alumni_connect.models.connection import ACCEPTED, Connection
from alumni_connect.models.message import Message
from alumni_connect.realtime.relay import MessageRelay, message_relay

logger = logging.getLogger(__name__)


class MessageStore:
    """Append-only, per-connection chat log."""

    def __init__(self, db: Session, relay: Optional[MessageRelay] = None):
        self.db = db
        self.relay = relay if relay is not None else message_relay

    def _connection(self, connection_id: int) -> Connection:
        conn = (
            self.db.query(Connection)
            .filter(Connection.id == connection_id)
            .first()
        )
        if not conn:
            raise NotFound("Connection not found")
        return conn

    def require_party(self, connection_id: int, user_id: str) -> Connection:
        conn = self._connection(connection_id)
        if not conn.has_party(user_id):
            raise NotAParty("Not part of this connection")
        return conn

    # --------------------------------------------------
    # APPEND
    # --------------------------------------------------
    def append(self, connection_id: int, sender_id: str, content: str) -> Message:
        conn = self._connection(connection_id)

        if conn.status != ACCEPTED:
            raise NotConnected("Connection is not accepted")

        if not conn.has_party(sender_id):
            raise NotAParty("Sender is not part of this connection")

        text = (content or "").strip()
        if not text:
            raise EmptyContent("Message cannot be empty")

        message = Message(
            connection_id=connection_id,
            sender_id=sender_id,
            content=text,
        )
        self.db.add(message)
        self.db.commit()
        self.db.refresh(message)

        logger.info(f"Message {message.id} appended to connection {connection_id}")

        self.relay.publish(message.to_record())
        return message

    # --------------------------------------------------
    # HISTORY
    # --------------------------------------------------
    @retry_read()
    def list_history(self, connection_id: int) -> List[Message]:
        self._connection(connection_id)

        return (
            self.db.query(Message)
            .filter(Message.connection_id == connection_id)
            .order_by(Message.created_at, Message.id)
            .all()
        )
