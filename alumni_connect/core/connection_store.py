import logging
from typing import List, Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.sql import func

from alumni_connect.core.connection_index import (
    ConnectionIndex,
    ConnectionIndexRegistry,
    index_registry,
)
from alumni_connect.core.errors import (
    DuplicateActive,
    InvalidRequest,
    InvalidTransition,
    NotAuthorized,
    NotFound,
)
from alumni_connect.core.resilience import retry_read
from alumni_connect.models.connection import (
    ACCEPTED,
    ACTIVE_STATUSES,
    PENDING,
    REJECTED,
    Connection,
    pair_key,
)

logger = logging.getLogger(__name__)

ACCEPT = "accept"
REJECT = "reject"

_DECISIONS = {ACCEPT: ACCEPTED, REJECT: REJECTED}


class ConnectionStore:
    """
    Request / accept / reject state machine over the ``connections`` table.

    Each mutation is one transaction. Committed rows are pushed into the
    index registry so both parties' cached indexes stay current.
    """

    def __init__(
        self,
        db: Session,
        registry: Optional[ConnectionIndexRegistry] = None,
    ):
        self.db = db
        self.registry = registry if registry is not None else index_registry

    # --------------------------------------------------
    # REQUEST
    # --------------------------------------------------
    def request(self, sender_id: str, receiver_id: str) -> Connection:
        if not sender_id or not receiver_id:
            raise InvalidRequest("Both users are required")

        if sender_id == receiver_id:
            raise InvalidRequest("Cannot connect with yourself")

        key = pair_key(sender_id, receiver_id)

        existing = (
            self.db.query(Connection)
            .filter(
                Connection.pair_key == key,
                Connection.status.in_(ACTIVE_STATUSES),
            )
            .first()
        )
        if existing:
            logger.warning(
                f"Duplicate request {sender_id} -> {receiver_id}: "
                f"connection {existing.id} is {existing.status}"
            )
            if existing.status == ACCEPTED:
                raise DuplicateActive("Already connected")
            raise DuplicateActive("Request already pending")

        conn = Connection(
            sender_id=sender_id,
            receiver_id=receiver_id,
            pair_key=key,
            status=PENDING,
        )
        self.db.add(conn)

        try:
            self.db.commit()
        except IntegrityError:
            # A concurrent request for the same pair committed first
            self.db.rollback()
            logger.warning(f"Lost request race {sender_id} -> {receiver_id}")
            raise DuplicateActive("Request already pending")

        self.db.refresh(conn)
        logger.info(f"Connection {conn.id} requested: {sender_id} -> {receiver_id}")

        self.registry.apply(conn)
        return conn

    # --------------------------------------------------
    # RESPOND (accept / reject)
    # --------------------------------------------------
    def respond(self, connection_id: int, responder_id: str, decision: str) -> Connection:
        if decision not in _DECISIONS:
            raise InvalidRequest(f"Unknown decision: {decision}")

        conn = self.get(connection_id)

        if conn.receiver_id != responder_id:
            raise NotAuthorized("Only the receiver can respond to this request")

        if conn.status != PENDING:
            raise InvalidTransition(f"Connection is already {conn.status}")

        # Conditional update: only one responder can move a row out of pending
        result = self.db.execute(
            update(Connection)
            .where(
                Connection.id == connection_id,
                Connection.status == PENDING,
            )
            .values(status=_DECISIONS[decision], updated_at=func.now())
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            self.db.rollback()
            raise InvalidTransition("Connection was already answered")

        self.db.commit()
        self.db.refresh(conn)
        logger.info(
            f"Connection {conn.id} {conn.status} by {responder_id}"
        )

        self.registry.apply(conn)
        return conn

    def accept(self, connection_id: int, responder_id: str) -> Connection:
        return self.respond(connection_id, responder_id, ACCEPT)

    def reject(self, connection_id: int, responder_id: str) -> Connection:
        return self.respond(connection_id, responder_id, REJECT)

    # --------------------------------------------------
    # QUERIES
    # --------------------------------------------------
    def get(self, connection_id: int) -> Connection:
        conn = (
            self.db.query(Connection)
            .filter(Connection.id == connection_id)
            .first()
        )
        if not conn:
            raise NotFound("Connection not found")
        return conn

    @retry_read()
    def list_incoming_pending(self, user_id: str) -> List[Connection]:
        return (
            self.db.query(Connection)
            .filter(
                Connection.receiver_id == user_id,
                Connection.status == PENDING,
            )
            .order_by(Connection.created_at.desc(), Connection.id.desc())
            .all()
        )

    @retry_read()
    def list_outgoing_pending(self, user_id: str) -> List[Connection]:
        return (
            self.db.query(Connection)
            .filter(
                Connection.sender_id == user_id,
                Connection.status == PENDING,
            )
            .order_by(Connection.created_at.desc(), Connection.id.desc())
            .all()
        )

    @retry_read()
    def list_accepted(self, user_id: str) -> List[Connection]:
        return (
            self.db.query(Connection)
            .filter(
                Connection.status == ACCEPTED,
                or_(
                    Connection.sender_id == user_id,
                    Connection.receiver_id == user_id,
                ),
            )
            .order_by(Connection.created_at.desc(), Connection.id.desc())
            .all()
        )

    @retry_read()
    def list_touching(self, user_id: str) -> List[Connection]:
        return (
            self.db.query(Connection)
            .filter(
                or_(
                    Connection.sender_id == user_id,
                    Connection.receiver_id == user_id,
                )
            )
            .order_by(Connection.created_at, Connection.id)
            # Rows cached in this session may have been answered elsewhere
            .populate_existing()
            .all()
        )

    # --------------------------------------------------
    # INDEX
    # --------------------------------------------------
    def index_for(self, viewer_id: str) -> ConnectionIndex:
        return self.registry.get(viewer_id, self.list_touching)

    def rebuild_index(self, viewer_id: str) -> ConnectionIndex:
        self.registry.invalidate(viewer_id)
        return self.index_for(viewer_id)
