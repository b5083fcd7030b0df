"""
HTTP surface: auth, catalog, bookings, tracking, realtime stream and health.
"""
import json

import pytest

from buslink.storage.entities import ROLE_BUS_OWNER

from .conftest import login, make_user


@pytest.fixture
def owner_client(app, owner):
    client = app.test_client()
    login(client, owner.username)
    return client


@pytest.fixture
def passenger_client(app, passenger):
    client = app.test_client()
    login(client, passenger.username)
    return client


def _events(resp):
    """Decoded SSE chunks of a streaming response."""
    for chunk in resp.response:
        yield chunk.decode('utf-8') if isinstance(chunk, bytes) else chunk


def _payload(chunk):
    data = [line[len('data: '):] for line in chunk.splitlines() if line.startswith('data: ')]
    return json.loads(data[0])


class TestAuth:

    def test_register_logs_in(self, client):
        resp = client.post('/api/register', json={
            'username': 'kamal', 'password': 'secret123', 'name': 'Kamal Perera',
            'email': 'kamal@buslink.lk', 'phone': '+94771234567',
        })
        assert resp.status_code == 201
        body = resp.get_json()
        assert body['role'] == 'passenger'
        assert 'password' not in body

        me = client.get('/api/user')
        assert me.status_code == 200
        assert me.get_json()['username'] == 'kamal'

    def test_register_validation(self, client):
        resp = client.post('/api/register', json={'username': 'ka', 'password': '123', 'name': 'K',
                                                  'email': 'not-an-email'})
        assert resp.status_code == 400
        errors = resp.get_json()['errors']
        assert {'username', 'password', 'name', 'email'} <= set(errors)

    def test_cannot_self_register_as_admin(self, client):
        resp = client.post('/api/register', json={
            'username': 'mallory', 'password': 'secret123', 'name': 'Mallory',
            'email': 'mallory@buslink.lk', 'role': 'admin',
        })
        assert resp.status_code == 400
        assert 'role' in resp.get_json()['errors']

    def test_duplicate_username(self, client, passenger):
        resp = client.post('/api/register', json={
            'username': passenger.username.upper(), 'password': 'secret123', 'name': 'Copy',
            'email': 'copy@buslink.lk',
        })
        assert resp.status_code == 400
        assert resp.get_json()['message'] == 'Username already exists'

    def test_duplicate_email(self, client, passenger):
        resp = client.post('/api/register', json={
            'username': 'someone', 'password': 'secret123', 'name': 'Copy',
            'email': passenger.email.upper(),
        })
        assert resp.status_code == 400
        assert resp.get_json()['message'] == 'Email already in use'

    def test_login_by_email_and_logout(self, client, passenger):
        login(client, passenger.email)
        assert client.post('/api/logout').status_code == 200
        assert client.get('/api/user').status_code == 401

    def test_wrong_password(self, client, passenger):
        resp = client.post('/api/login', json={'username': passenger.username, 'password': 'wrong-one'})
        assert resp.status_code == 401

    def test_body_must_be_json_object(self, client):
        resp = client.post('/api/login', data='username=x', content_type='application/x-www-form-urlencoded')
        assert resp.status_code == 400
        assert resp.get_json()['message'] == 'Expected a JSON object'


class TestCatalog:

    def test_owner_creates_bus_and_schedule(self, owner_client, client, route):
        resp = owner_client.post('/api/buses', json={'name': 'Coastal Line', 'busNumber': 'SP-77',
                                                     'capacity': 8, 'hasAc': True})
        assert resp.status_code == 201
        bus = resp.get_json()
        assert bus['hasAc'] is True and bus['hasWifi'] is False
        assert '1A' in bus['seatLayout']

        resp = owner_client.post('/api/schedules', json={
            'busId': bus['id'], 'routeId': route.id, 'departureTime': '2025-03-02T07:30:00',
            'arrivalTime': '2025-03-02T10:30:00', 'price': 1500,
        })
        assert resp.status_code == 201
        schedule = resp.get_json()
        assert schedule['available'] is True
        assert schedule['departureTime'] == '2025-03-02T07:30:00'

        found = client.get('/api/search?from=colombo&to=kandy&date=2025-03-02').get_json()
        assert [s['id'] for s in found] == [schedule['id']]
        assert found[0]['bus']['busNumber'] == 'SP-77'
        assert client.get('/api/search?from=colombo&to=kandy&date=2025-03-03').get_json() == []

    def test_schedule_arrival_must_follow_departure(self, owner_client, bus, route):
        resp = owner_client.post('/api/schedules', json={
            'busId': bus.id, 'routeId': route.id, 'departureTime': '2025-03-02T10:30:00',
            'arrivalTime': '2025-03-02T07:30:00', 'price': 1500,
        })
        assert resp.status_code == 400
        assert 'arrivalTime' in resp.get_json()['errors']

    def test_owner_cannot_touch_foreign_bus(self, app, bus, other_owner):
        rival = app.test_client()
        login(rival, other_owner.username)
        assert rival.put(f'/api/buses/{bus.id}', json={'name': 'Stolen'}).status_code == 403
        assert rival.delete(f'/api/buses/{bus.id}').status_code == 403

    def test_partial_bus_update(self, owner_client, bus, store):
        resp = owner_client.put(f'/api/buses/{bus.id}', json={'hasWifi': True})
        assert resp.status_code == 200
        updated = store.get_bus(bus.id)
        assert updated.has_wifi is True
        assert updated.name == bus.name and updated.has_ac is True

    def test_booked_schedule_and_its_bus_cannot_be_deleted(self, owner_client, passenger, bus, schedule, store):
        store.create_booking(user_id=passenger.id, schedule_id=schedule.id, seats=['1A'], total_price=1500)

        resp = owner_client.delete(f'/api/schedules/{schedule.id}')
        assert resp.status_code == 400
        assert resp.get_json()['message'] == 'Schedule has bookings'
        resp = owner_client.delete(f'/api/buses/{bus.id}')
        assert resp.status_code == 400
        assert resp.get_json()['message'] == 'Bus has schedules'
        assert store.get_schedule(schedule.id) is not None

    def test_unbooked_schedule_then_bus_delete(self, owner_client, bus, schedule, store):
        assert owner_client.delete(f'/api/schedules/{schedule.id}').status_code == 204
        assert owner_client.delete(f'/api/buses/{bus.id}').status_code == 204
        assert store.get_bus(bus.id) is None

    def test_passenger_cannot_create_bus(self, passenger_client):
        resp = passenger_client.post('/api/buses', json={'name': 'x', 'busNumber': 'y', 'capacity': 4})
        assert resp.status_code == 403

    def test_routes_admin_only(self, app, client, admin, owner_client):
        payload = {'fromLocation': 'Galle', 'toLocation': 'Matara', 'estimatedDuration': 60}
        assert owner_client.post('/api/routes', json=payload).status_code == 403

        admin_client = app.test_client()
        login(admin_client, admin.username)
        assert admin_client.post('/api/routes', json=payload).status_code == 201
        assert admin_client.post('/api/routes', json=payload).status_code == 400
        assert [r['toLocation'] for r in client.get('/api/routes').get_json()] == ['Matara']

    def test_review_requires_completed_trip(self, passenger_client, owner_client, bus, schedule):
        review = {'busId': bus.id, 'scheduleId': schedule.id, 'rating': 5, 'comment': 'Smooth ride'}
        booking = passenger_client.post('/api/bookings', json={'scheduleId': schedule.id,
                                                               'seats': ['1A']}).get_json()
        assert passenger_client.post('/api/reviews', json=review).status_code == 403

        assert owner_client.post(f'/api/bookings/{booking["id"]}/complete').status_code == 200
        assert passenger_client.post('/api/reviews', json=review).status_code == 201

        details = passenger_client.get(f'/api/buses/{bus.id}/details').get_json()
        assert details['averageRating'] == 5
        assert passenger_client.get(f'/api/reviews/{bus.id}').get_json()[0]['username'] == 'Nimal'


class TestBookings:

    def test_requires_login(self, client, schedule):
        resp = client.post('/api/bookings', json={'scheduleId': schedule.id, 'seats': ['1A']})
        assert resp.status_code == 401

    def test_book_conflict_and_cancel(self, app, passenger_client, schedule, store):
        resp = passenger_client.post('/api/bookings', json={'scheduleId': schedule.id, 'seats': ['2B', '2C'],
                                                            'totalPrice': 3000})
        assert resp.status_code == 201
        booking = resp.get_json()
        assert booking['status'] == 'confirmed'
        assert booking['totalPrice'] == 3000

        rival = app.test_client()
        make_user(store, 'saman')
        login(rival, 'saman')
        resp = rival.post('/api/bookings', json={'scheduleId': schedule.id, 'seats': ['2C', '3A']})
        assert resp.status_code == 400
        assert resp.get_json()['conflictingSeats'] == ['2C']

        seats = rival.get(f'/api/schedules/{schedule.id}/seats').get_json()
        assert seats['held'] == ['2B', '2C']
        assert '2B' not in seats['available']

        assert rival.post(f'/api/bookings/{booking["id"]}/cancel').status_code == 403
        resp = passenger_client.post(f'/api/bookings/{booking["id"]}/cancel')
        assert resp.status_code == 200
        assert resp.get_json()['status'] == 'cancelled'

        assert rival.post('/api/bookings', json={'scheduleId': schedule.id, 'seats': ['2B']}).status_code == 201

    def test_unknown_schedule_and_closed_schedule(self, passenger_client, schedule, store):
        resp = passenger_client.post('/api/bookings', json={'scheduleId': 999, 'seats': ['1A']})
        assert resp.status_code == 404

        store.update_schedule(schedule.id, {'available': False})
        resp = passenger_client.post('/api/bookings', json={'scheduleId': schedule.id, 'seats': ['1A']})
        assert resp.status_code == 400
        assert 'not available' in resp.get_json()['message']

    def test_empty_seats_and_missing_schedule(self, passenger_client, schedule):
        resp = passenger_client.post('/api/bookings', json={'scheduleId': schedule.id, 'seats': []})
        assert resp.status_code == 400
        resp = passenger_client.post('/api/bookings', json={'seats': ['1A']})
        assert resp.status_code == 400
        assert 'scheduleId' in resp.get_json()['errors']

    def test_list_and_view(self, app, passenger_client, owner_client, schedule, other_owner):
        booking = passenger_client.post('/api/bookings', json={'scheduleId': schedule.id,
                                                               'seats': ['1B']}).get_json()
        mine = passenger_client.get('/api/bookings').get_json()
        assert mine[0]['schedule']['route']['toLocation'] == 'Kandy'

        assert owner_client.get(f'/api/bookings/{booking["id"]}').status_code == 200
        on_schedule = owner_client.get(f'/api/schedules/{schedule.id}/bookings').get_json()
        assert on_schedule[0]['passengerName'] == 'Nimal'

        rival = app.test_client()
        login(rival, other_owner.username)
        assert rival.get(f'/api/bookings/{booking["id"]}').status_code == 403


class TestTracking:

    def test_owner_reports_and_anyone_reads(self, owner_client, client, bus):
        assert client.get(f'/api/location/{bus.id}').status_code == 404

        resp = owner_client.post('/api/location', json={'busId': bus.id, 'latitude': '6.9271',
                                                        'longitude': '79.8612', 'speed': 45})
        assert resp.status_code == 201

        latest = client.get(f'/api/location/{bus.id}').get_json()
        assert (latest['latitude'], latest['longitude'], latest['speed']) == ('6.9271', '79.8612', 45)
        assert len(client.get(f'/api/location/{bus.id}/history').get_json()) == 1

    def test_numeric_coordinates_are_accepted(self, owner_client, bus):
        resp = owner_client.post('/api/location', json={'busId': bus.id, 'latitude': 6.9271, 'longitude': 79.8612})
        assert resp.status_code == 201
        assert resp.get_json()['latitude'] == '6.9271'

    def test_passengers_and_other_owners_cannot_report(self, app, passenger_client, bus, other_owner):
        payload = {'busId': bus.id, 'latitude': '6.9', 'longitude': '79.8'}
        assert passenger_client.post('/api/location', json=payload).status_code == 403

        rival = app.test_client()
        login(rival, other_owner.username)
        foreign = rival.post('/api/location', json=payload)
        unknown = rival.post('/api/location', json=dict(payload, busId=999))
        assert foreign.status_code == unknown.status_code == 403
        assert foreign.get_json() == unknown.get_json()

    def test_out_of_range_coordinates(self, owner_client, bus):
        resp = owner_client.post('/api/location', json={'busId': bus.id, 'latitude': '95', 'longitude': '79.8'})
        assert resp.status_code == 400


class TestRealtime:

    def test_stream_delivers_subscribed_events(self, app, client, passenger, schedule):
        resp = client.get('/realtime/stream')
        assert resp.status_code == 200
        assert resp.mimetype == 'text/event-stream'
        events = _events(resp)

        hello = next(events)
        assert hello.startswith('event: connected')
        connection = _payload(hello)['connection']

        resp_sub = client.post('/realtime/subscribe', json={'connection': connection,
                                                            'channel': f'schedule_{schedule.id}'})
        assert resp_sub.status_code == 200
        assert resp_sub.get_json()['channels'] == [f'schedule_{schedule.id}']

        app.bookings.request_booking(schedule.id, ['3B'], passenger.id)
        event = _payload(next(events))
        assert event == {'type': 'seats_held', 'scheduleId': schedule.id, 'seats': ['3B']}

        resp.close()
        assert app.registry.get(connection) is None

    def test_owner_channel_requires_that_owner(self, owner_client, passenger_client, owner):
        channel = f'bus_owner_{owner.id}'
        denied = passenger_client.get(f'/realtime/stream?channel={channel}')
        assert denied.status_code == 403

        resp = owner_client.get(f'/realtime/stream?channel={channel}')
        assert resp.status_code == 200
        assert _payload(next(_events(resp)))['channels'] == [channel]
        resp.close()

    def test_owner_hears_new_bookings(self, app, owner_client, passenger, owner, schedule):
        resp = owner_client.get(f'/realtime/stream?channel=bus_owner_{owner.id}')
        events = _events(resp)
        next(events)

        app.bookings.request_booking(schedule.id, ['1A'], passenger.id)
        event = _payload(next(events))
        assert event['type'] == 'new_booking'
        assert event['booking']['seats'] == ['1A']
        resp.close()

    def test_unknown_channel_rejected(self, client):
        assert client.get('/realtime/stream?channel=everything').status_code == 400

    def test_subscribe_unknown_connection(self, client):
        resp = client.post('/realtime/subscribe', json={'connection': 'nope', 'channel': 'schedule_1'})
        assert resp.status_code == 404

    def test_unsubscribe(self, app, client):
        conn = app.registry.connect()
        app.registry.subscribe(conn, 'schedule_1')
        app.registry.subscribe(conn, 'schedule_2')
        resp = client.post('/realtime/unsubscribe', json={'connection': conn.id, 'channel': 'schedule_1'})
        assert resp.get_json()['channels'] == ['schedule_2']
        resp = client.post('/realtime/unsubscribe', json={'connection': conn.id})
        assert resp.get_json()['channels'] == []


class TestHealth:

    def test_health(self, client):
        body = client.get('/health/').get_json()
        assert body['status'] == 'healthy'
        assert body['storage'] == 'memory'
        assert client.get('/health/ready').status_code == 200


def test_owner_registration_role(client):
    resp = client.post('/api/register', json={
        'username': 'fleet', 'password': 'secret123', 'name': 'Fleet Owner',
        'email': 'fleet@buslink.lk', 'role': ROLE_BUS_OWNER,
    })
    assert resp.status_code == 201
    assert resp.get_json()['role'] == ROLE_BUS_OWNER
