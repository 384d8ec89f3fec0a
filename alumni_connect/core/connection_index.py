"""
Per-viewer relationship lookup derived from connection rows.

An index is built once from every connection touching the viewer and then
kept current by applying each committed mutation to it. Rejected rows are
not relationships: they read as ``none``.
"""
from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from typing import Callable, Dict, Iterable, List, Optional, Set

from alumni_connect.config import settings
from alumni_connect.models.connection import Connection, ACCEPTED, PENDING, REJECTED

logger = logging.getLogger(__name__)

NONE = "none"
PENDING_OUTGOING = "pending_outgoing"
PENDING_INCOMING = "pending_incoming"
CONNECTED = "connected"

# Loader passes before giving up on caching a viewer under heavy writes
BUILD_ATTEMPTS = 3


class ConnectionIndex:
    def __init__(self, viewer_id: str) -> None:
        self.viewer_id = viewer_id
        self._statuses: Dict[str, str] = {}
        self._connection_ids: Dict[str, Optional[int]] = {}
        self._provisional: Set[str] = set()
        # Cached indexes are read by request threads while the registry applies writes
        self._lock = threading.RLock()

    @classmethod
    def build(cls, viewer_id: str, connections: Iterable[Connection]) -> "ConnectionIndex":
        index = cls(viewer_id)
        for conn in connections:
            # A rejected row must never shadow a newer active row for the pair
            if conn.status == REJECTED:
                continue
            index.apply(conn)
        return index

    # ------------------------------------
    # Lookups
    # ------------------------------------
    def status_of(self, other_id: str) -> str:
        with self._lock:
            return self._statuses.get(other_id, NONE)

    def button_state(self, other_id: str) -> str:
        """Both pending directions collapse to ``pending``."""
        status = self.status_of(other_id)
        if status in (PENDING_OUTGOING, PENDING_INCOMING):
            return "pending"
        return status

    def connection_id_for(self, other_id: str) -> Optional[int]:
        with self._lock:
            return self._connection_ids.get(other_id)

    def is_confirmed(self, other_id: str) -> bool:
        with self._lock:
            return other_id not in self._provisional

    def _with_status(self, status: str) -> List[str]:
        with self._lock:
            return sorted(
                other for other, value in self._statuses.items() if value == status
            )

    @property
    def outgoing(self) -> List[str]:
        return self._with_status(PENDING_OUTGOING)

    @property
    def incoming(self) -> List[str]:
        return self._with_status(PENDING_INCOMING)

    @property
    def connected(self) -> List[str]:
        return self._with_status(CONNECTED)

    @property
    def pending_incoming_count(self) -> int:
        return len(self.incoming)

    def as_dict(self) -> dict:
        with self._lock:
            statuses = dict(self._statuses)
        return {
            "viewer_id": self.viewer_id,
            "statuses": statuses,
            "pending_incoming_count": sum(
                1 for value in statuses.values() if value == PENDING_INCOMING
            ),
        }

    # ------------------------------------
    # Updates
    # ------------------------------------
    def apply(self, conn: Connection) -> None:
        """
        Fold one authoritative connection row into the index.
        """
        if not conn.has_party(self.viewer_id):
            raise ValueError(
                f"Connection {conn.id} does not involve viewer {self.viewer_id}"
            )

        other = conn.other_party(self.viewer_id)

        if conn.status == ACCEPTED:
            status = CONNECTED
        elif conn.status == PENDING and conn.sender_id == self.viewer_id:
            status = PENDING_OUTGOING
        else:
            status = PENDING_INCOMING

        with self._lock:
            self._provisional.discard(other)

            if conn.status == REJECTED:
                if self._connection_ids.get(other) in (None, conn.id):
                    self._statuses.pop(other, None)
                    self._connection_ids.pop(other, None)
                return

            self._statuses[other] = status
            self._connection_ids[other] = conn.id

    def hold_provisional(self, other_id: str) -> None:
        """
        Show an outgoing request before the store confirms it. The entry
        stays unconfirmed until ``apply`` or ``discard_provisional``.
        """
        with self._lock:
            if other_id in self._statuses:
                return
            self._statuses[other_id] = PENDING_OUTGOING
            self._connection_ids[other_id] = None
            self._provisional.add(other_id)

    def discard_provisional(self, other_id: str) -> None:
        with self._lock:
            if other_id not in self._provisional:
                return
            self._provisional.discard(other_id)
            self._statuses.pop(other_id, None)
            self._connection_ids.pop(other_id, None)


def request_with_reconciliation(
    index: ConnectionIndex,
    other_id: str,
    issue: Callable[[], Connection],
) -> Connection:
    """
    Run ``issue`` (a connection request) behind a provisional index entry.

    The entry is replaced by the returned row, or rolled back when the
    request fails.
    """
    index.hold_provisional(other_id)
    try:
        conn = issue()
    except Exception:
        index.discard_provisional(other_id)
        raise
    index.apply(conn)
    return conn


class ConnectionIndexRegistry:
    """
    Caches one index per viewer and applies mutations to both parties.

    Builds run outside the registry lock. While a viewer is being built,
    every mutation touching that viewer bumps its generation, and a build
    that saw the generation move is thrown away and loaded again, so a
    write committed mid-build is never lost from the cache. The cache is
    bounded and evicts the least recently used viewer.
    """

    def __init__(self, max_viewers: Optional[int] = None) -> None:
        self.max_viewers = max_viewers or settings.INDEX_CACHE_MAX_VIEWERS
        self._indexes: "OrderedDict[str, ConnectionIndex]" = OrderedDict()
        self._generations: Dict[str, int] = {}
        self._builders: Dict[str, int] = {}
        self._lock = threading.Lock()

    def get(
        self,
        viewer_id: str,
        loader: Callable[[str], Iterable[Connection]],
    ) -> ConnectionIndex:
        with self._lock:
            index = self._indexes.get(viewer_id)
            if index is not None:
                self._indexes.move_to_end(viewer_id)
                return index
            self._builders[viewer_id] = self._builders.get(viewer_id, 0) + 1
            self._generations.setdefault(viewer_id, 0)

        try:
            return self._build(viewer_id, loader)
        finally:
            with self._lock:
                self._builders[viewer_id] -= 1
                if not self._builders[viewer_id]:
                    del self._builders[viewer_id]
                    del self._generations[viewer_id]

    def _build(
        self,
        viewer_id: str,
        loader: Callable[[str], Iterable[Connection]],
    ) -> ConnectionIndex:
        for attempt in range(1, BUILD_ATTEMPTS + 1):
            with self._lock:
                generation = self._generations[viewer_id]

            built = ConnectionIndex.build(viewer_id, loader(viewer_id))

            with self._lock:
                cached = self._indexes.get(viewer_id)
                if cached is not None:
                    # Another build won and has been receiving writes since
                    return cached
                if self._generations[viewer_id] == generation:
                    self._store(viewer_id, built)
                    logger.debug(f"Built connection index for {viewer_id}")
                    return built

            logger.debug(
                f"Connection index for {viewer_id} changed during build "
                f"(attempt {attempt}/{BUILD_ATTEMPTS})"
            )

        logger.warning(
            f"Serving uncached connection index for {viewer_id}: "
            f"writes kept landing during {BUILD_ATTEMPTS} builds"
        )
        return built

    def _store(self, viewer_id: str, index: ConnectionIndex) -> None:
        self._indexes[viewer_id] = index
        while len(self._indexes) > self.max_viewers:
            evicted, _ = self._indexes.popitem(last=False)
            logger.debug(f"Evicted connection index for {evicted}")

    def apply(self, conn: Connection) -> None:
        with self._lock:
            for user_id in (conn.sender_id, conn.receiver_id):
                if user_id in self._generations:
                    self._generations[user_id] += 1
                index = self._indexes.get(user_id)
                if index is not None:
                    index.apply(conn)

    def invalidate(self, viewer_id: Optional[str] = None) -> None:
        with self._lock:
            if viewer_id is None:
                self._indexes.clear()
            else:
                self._indexes.pop(viewer_id, None)

    def __contains__(self, viewer_id: str) -> bool:
        with self._lock:
            return viewer_id in self._indexes

    def __len__(self) -> int:
        with self._lock:
            return len(self._indexes)


index_registry = ConnectionIndexRegistry()
"""Process-wide cache used by the API."""
