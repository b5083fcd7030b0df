import json
import logging
import queue
import re
import threading
import time
import uuid
import weakref
from typing import Any, Dict, List, Optional

from buslink.errors import Forbidden, InvalidRequest

logger = logging.getLogger(__name__)

CHANNEL_PATTERN = re.compile(r'^(bus_location|bus_owner|schedule)_(\d+)$')


def location_channel(bus_id: int) -> str:
    return f'bus_location_{bus_id}'


def owner_channel(owner_id: int) -> str:
    return f'bus_owner_{owner_id}'


def schedule_channel(schedule_id: int) -> str:
    return f'schedule_{schedule_id}'


class Connection:
    """One live client stream. Events are delivered in publish order."""

    def __init__(self, user_id: Optional[int] = None, maxsize: int = 256, clock=time.monotonic):
        self.id = uuid.uuid4().hex
        self.user_id = user_id
        self.channels: set = set()
        self.closed = False
        self._clock = clock
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self.last_seen = clock()

    def touch(self) -> None:
        self.last_seen = self._clock()

    def idle_for(self) -> float:
        return self._clock() - self.last_seen

    def send(self, data: str) -> bool:
        try:
            self._queue.put_nowait(data)
            return True
        except queue.Full:
            return False

    def receive(self, timeout: Optional[float] = None) -> Optional[str]:
        """Next queued event, or ``None`` on timeout or close."""
        try:
            data = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        return None if self.closed else data

    def close(self) -> None:
        self.closed = True
        try:
            # wake up a reader blocked in receive()
            self._queue.put_nowait('')
        except queue.Full:
            pass

    def __repr__(self):
        return f'<Connection {self.id[:8]} user={self.user_id} channels={sorted(self.channels)}>'


class SubscriptionRegistry:
    """In-memory channel membership for live connections.

    The registry only holds weak references: a connection dropped by its
    stream is gone from every channel without further bookkeeping. This is
    suitable for single-process deployments. For multi-process, replace with
    Redis pub/sub.
    """

    def __init__(self, queue_size: int = 256, clock=time.monotonic):
        self._lock = threading.Lock()
        self._queue_size = queue_size
        self._clock = clock
        self._connections: 'weakref.WeakValueDictionary[str, Connection]' = weakref.WeakValueDictionary()
        self._channels: Dict[str, 'weakref.WeakSet[Connection]'] = {}

    def connect(self, user_id: Optional[int] = None) -> Connection:
        conn = Connection(user_id=user_id, maxsize=self._queue_size, clock=self._clock)
        with self._lock:
            self._connections[conn.id] = conn
        return conn

    def get(self, connection_id: str) -> Optional[Connection]:
        with self._lock:
            conn = self._connections.get(connection_id)
        if conn is None or conn.closed:
            return None
        return conn

    def subscribe(self, conn: Connection, channel: str) -> None:
        match = CHANNEL_PATTERN.match(channel or '')
        if not match:
            raise InvalidRequest(f'Unknown channel {channel!r}')
        kind, ident = match.groups()
        if kind == 'bus_owner' and conn.user_id != int(ident):
            raise Forbidden('You can only subscribe to your own owner channel')
        with self._lock:
            self._channels.setdefault(channel, weakref.WeakSet()).add(conn)
            conn.channels.add(channel)
        conn.touch()

    def unsubscribe(self, conn: Connection, channel: Optional[str] = None) -> None:
        """Leave one channel, or every channel when ``channel`` is None."""
        with self._lock:
            channels = [channel] if channel else list(conn.channels)
            for name in channels:
                members = self._channels.get(name)
                if members is not None:
                    members.discard(conn)
                    if not members:
                        self._channels.pop(name, None)
                conn.channels.discard(name)
        conn.touch()

    def disconnect(self, conn: Connection) -> None:
        self.unsubscribe(conn)
        with self._lock:
            self._connections.pop(conn.id, None)
        conn.close()

    def publish(self, channel: str, payload: Dict[str, Any]) -> int:
        """Best-effort delivery to current subscribers; returns how many got it."""
        with self._lock:
            members = list(self._channels.get(channel, ()))
        if not members:
            return 0
        data = json.dumps(payload)
        delivered = 0
        for conn in members:
            if conn.closed:
                continue
            if conn.send(data):
                delivered += 1
            else:
                logger.warning('Dropped %s event for slow connection %s', channel, conn.id)
        return delivered

    def evict_idle(self, max_idle: float) -> int:
        with self._lock:
            stale = [c for c in self._connections.values() if c.idle_for() > max_idle]
        for conn in stale:
            logger.info('Evicting idle connection %s', conn.id)
            self.disconnect(conn)
        return len(stale)

    def subscribers(self, channel: str) -> List[Connection]:
        with self._lock:
            return [c for c in self._channels.get(channel, ()) if not c.closed]

    def __len__(self):
        with self._lock:
            return len(self._connections)
