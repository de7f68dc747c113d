"""Registry of live sessions and their meeting subscriptions."""

import threading

import structlog

from src.realtime.connection import LiveConnection

logger = structlog.get_logger()

SHARDS = 16


class SessionRegistry:
    """Tracks open connections and which meetings each one follows.

    The meeting -> subscribers map is striped by meeting id over SHARDS
    sub-maps with one lock each. Sessions and the per-connection reverse
    index have their own locks. When both are needed the reverse-index
    lock is taken before a shard lock. Query methods return frozen
    snapshots, so callers can iterate while other connections subscribe
    or disconnect.
    """

    def __init__(self, shards: int = SHARDS) -> None:
        self._sessions: dict[str, LiveConnection] = {}
        self._sessions_lock = threading.Lock()
        # meeting_id -> connection ids
        self._subscriber_shards: list[tuple[dict[str, set[str]], threading.Lock]] = [
            ({}, threading.Lock()) for _ in range(shards)
        ]
        # connection id -> meeting ids, for cleanup on disconnect
        self._subscriptions: dict[str, set[str]] = {}
        self._subscriptions_lock = threading.Lock()

    def add_session(self, conn: LiveConnection) -> None:
        with self._sessions_lock:
            self._sessions[conn.connection_id] = conn
        logger.info("session added", connection_id=conn.connection_id)

    def remove_session(self, conn: LiveConnection) -> None:
        """Forget a connection and purge it from every subscription set."""
        with self._sessions_lock:
            self._sessions.pop(conn.connection_id, None)
        with self._subscriptions_lock:
            meetings = self._subscriptions.pop(conn.connection_id, set())
            for meeting_id in meetings:
                self._discard_subscriber(meeting_id, conn.connection_id)
        logger.info(
            "session removed",
            connection_id=conn.connection_id,
            subscriptions=len(meetings),
        )

    def subscribe(self, conn: LiveConnection, meeting_id: str) -> None:
        subscribers, lock = self._shard(meeting_id)
        with self._subscriptions_lock:
            self._subscriptions.setdefault(conn.connection_id, set()).add(meeting_id)
            with lock:
                subscribers.setdefault(meeting_id, set()).add(conn.connection_id)
        logger.info("subscribed", connection_id=conn.connection_id, meeting_id=meeting_id)

    def unsubscribe(self, conn: LiveConnection, meeting_id: str) -> None:
        with self._subscriptions_lock:
            self._discard_subscriber(meeting_id, conn.connection_id)
            meetings = self._subscriptions.get(conn.connection_id)
            if meetings is not None:
                meetings.discard(meeting_id)
                if not meetings:
                    del self._subscriptions[conn.connection_id]
        logger.info("unsubscribed", connection_id=conn.connection_id, meeting_id=meeting_id)

    def all_sessions(self) -> frozenset[LiveConnection]:
        with self._sessions_lock:
            return frozenset(self._sessions.values())

    def subscribers_of(self, meeting_id: str) -> frozenset[LiveConnection]:
        """Connections subscribed to a meeting; empty if there are none."""
        subscribers, lock = self._shard(meeting_id)
        with lock:
            ids = frozenset(subscribers.get(meeting_id, ()))
        with self._sessions_lock:
            return frozenset(self._sessions[i] for i in ids if i in self._sessions)

    def subscriptions_of(self, conn: LiveConnection) -> frozenset[str]:
        with self._subscriptions_lock:
            return frozenset(self._subscriptions.get(conn.connection_id, ()))

    @property
    def session_count(self) -> int:
        with self._sessions_lock:
            return len(self._sessions)

    def _shard(self, meeting_id: str) -> tuple[dict[str, set[str]], threading.Lock]:
        return self._subscriber_shards[hash(meeting_id) % len(self._subscriber_shards)]

    def _discard_subscriber(self, meeting_id: str, connection_id: str) -> None:
        subscribers, lock = self._shard(meeting_id)
        with lock:
            ids = subscribers.get(meeting_id)
            if ids is None:
                return
            ids.discard(connection_id)
            if not ids:
                del subscribers[meeting_id]
