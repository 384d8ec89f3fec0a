from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index

from alumni_connect.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class Message(Base):
    __tablename__ = "messages"

    # Autoincrement id doubles as the tiebreak for equal timestamps
    id = Column(Integer, primary_key=True, index=True)

    connection_id = Column(
        Integer,
        ForeignKey("connections.id"),
        nullable=False,
        index=True,
    )
    sender_id = Column(String, nullable=False)
    content = Column(Text, nullable=False)

    # Assigned by the store, never by the client
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index(
            "ix_messages_connection_order",
            "connection_id",
            "created_at",
            "id",
        ),
    )

    @property
    def created_at_utc(self) -> datetime:
        # SQLite hands timestamps back without tzinfo
        if self.created_at.tzinfo is None:
            return self.created_at.replace(tzinfo=timezone.utc)
        return self.created_at

    def to_record(self) -> dict:
        """
        Wire shape shared by the history endpoint and the realtime relay.
        """
        return {
            "id": self.id,
            "connection_id": self.connection_id,
            "sender_id": self.sender_id,
            "content": self.content,
            "created_at": self.created_at_utc.isoformat(),
        }
