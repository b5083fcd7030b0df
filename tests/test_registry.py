import gc
import json

import pytest

from buslink.errors import Forbidden, InvalidRequest
from buslink.realtime import SubscriptionRegistry


class MonotonicStub:

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def registry():
    return SubscriptionRegistry(queue_size=8)


class TestSubscriptions:

    def test_publish_reaches_only_channel_members(self, registry):
        a, b = registry.connect(), registry.connect()
        registry.subscribe(a, 'bus_location_1')
        registry.subscribe(b, 'bus_location_2')

        assert registry.publish('bus_location_1', {'n': 1}) == 1
        assert json.loads(a.receive(timeout=0.1)) == {'n': 1}
        assert b.receive(timeout=0.01) is None

    def test_publish_without_subscribers(self, registry):
        assert registry.publish('schedule_1', {'n': 1}) == 0

    def test_events_arrive_in_publish_order(self, registry):
        conn = registry.connect()
        registry.subscribe(conn, 'schedule_3')
        for n in range(5):
            registry.publish('schedule_3', {'n': n})
        assert [json.loads(conn.receive(timeout=0.1))['n'] for _ in range(5)] == [0, 1, 2, 3, 4]

    def test_unsubscribe_one_or_all(self, registry):
        conn = registry.connect()
        registry.subscribe(conn, 'schedule_1')
        registry.subscribe(conn, 'bus_location_1')

        registry.unsubscribe(conn, 'schedule_1')
        assert conn.channels == {'bus_location_1'}
        assert registry.subscribers('schedule_1') == []

        registry.unsubscribe(conn)
        assert conn.channels == set()
        assert registry.publish('bus_location_1', {}) == 0

    @pytest.mark.parametrize('channel', ['', 'bus_location_', 'buses_1', 'schedule_1; drop', 'schedule_x'])
    def test_rejects_unknown_channels(self, registry, channel):
        conn = registry.connect()
        with pytest.raises(InvalidRequest):
            registry.subscribe(conn, channel)

    def test_owner_channel_is_private(self, registry):
        anonymous = registry.connect()
        owner = registry.connect(user_id=5)
        with pytest.raises(Forbidden):
            registry.subscribe(anonymous, 'bus_owner_5')
        with pytest.raises(Forbidden):
            registry.subscribe(owner, 'bus_owner_6')
        registry.subscribe(owner, 'bus_owner_5')
        assert registry.subscribers('bus_owner_5') == [owner]


class TestLifecycle:

    def test_disconnect_removes_everywhere(self, registry):
        conn = registry.connect()
        registry.subscribe(conn, 'schedule_1')
        registry.disconnect(conn)

        assert conn.closed
        assert registry.get(conn.id) is None
        assert registry.publish('schedule_1', {}) == 0
        assert len(registry) == 0

    def test_dropped_connection_leaves_no_trace(self, registry):
        conn = registry.connect()
        registry.subscribe(conn, 'schedule_1')
        del conn
        gc.collect()

        assert len(registry) == 0
        assert registry.subscribers('schedule_1') == []

    def test_close_wakes_blocked_reader(self, registry):
        conn = registry.connect()
        conn.close()
        assert conn.receive(timeout=1) is None

    def test_full_queue_drops_for_that_connection_only(self):
        registry = SubscriptionRegistry(queue_size=1)
        slow, fast = registry.connect(), registry.connect()
        registry.subscribe(slow, 'schedule_1')
        registry.subscribe(fast, 'schedule_1')

        assert registry.publish('schedule_1', {'n': 1}) == 2
        fast.receive(timeout=0.1)
        assert registry.publish('schedule_1', {'n': 2}) == 1
        assert json.loads(fast.receive(timeout=0.1)) == {'n': 2}
        assert json.loads(slow.receive(timeout=0.1)) == {'n': 1}

    def test_idle_connections_are_evicted(self):
        clock = MonotonicStub()
        registry = SubscriptionRegistry(clock=clock)
        idle, busy = registry.connect(), registry.connect()
        registry.subscribe(idle, 'schedule_1')

        clock.now = 200
        busy.touch()
        clock.now = 400

        assert registry.evict_idle(300) == 1
        assert idle.closed and not busy.closed
        assert registry.get(idle.id) is None
        assert registry.get(busy.id) is busy
