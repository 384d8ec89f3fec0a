from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    CheckConstraint,
    Index,
    text,
)
from sqlalchemy.sql import func

from alumni_connect.database import Base


PENDING = "pending"
ACCEPTED = "accepted"
REJECTED = "rejected"

STATUSES = (PENDING, ACCEPTED, REJECTED)
ACTIVE_STATUSES = (PENDING, ACCEPTED)

_ACTIVE_PAIR_WHERE = text("status IN ('pending', 'accepted')")


def pair_key(user_a: str, user_b: str) -> str:
    """
    Order-independent key for the unordered pair {user_a, user_b}.
    """
    low, high = sorted((str(user_a), str(user_b)))
    return f"{low}:{high}"


class Connection(Base):
    __tablename__ = "connections"

    id = Column(Integer, primary_key=True, index=True)

    # Users involved (Supabase auth ids)
    sender_id = Column(String, nullable=False, index=True)
    receiver_id = Column(String, nullable=False, index=True)

    # Same value for A->B and B->A
    pair_key = Column(String, nullable=False, index=True)

    # ------------------------------------
    # Connection state
    # ------------------------------------
    # pending | accepted | rejected
    status = Column(
        String,
        nullable=False,
        default=PENDING,
        index=True,
    )

    # ------------------------------------
    # Timestamps
    # ------------------------------------
    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(
            "sender_id != receiver_id",
            name="ck_connections_not_self",
        ),
        CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected')",
            name="ck_connections_status",
        ),
        # At most one pending/accepted row per unordered pair
        Index(
            "uq_connections_active_pair",
            "pair_key",
            unique=True,
            sqlite_where=_ACTIVE_PAIR_WHERE,
            postgresql_where=_ACTIVE_PAIR_WHERE,
        ),
        Index(
            "ix_connections_sender_status",
            "sender_id",
            "status",
        ),
        Index(
            "ix_connections_receiver_status",
            "receiver_id",
            "status",
        ),
    )

    def other_party(self, user_id: str) -> str:
        return self.receiver_id if self.sender_id == user_id else self.sender_id

    def has_party(self, user_id: str) -> bool:
        return user_id in {self.sender_id, self.receiver_id}

    def __repr__(self):
        return (
            f"<Connection {self.id} {self.sender_id} -> "
            f"{self.receiver_id} ({self.status})>"
        )
