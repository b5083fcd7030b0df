from datetime import datetime, timedelta

import pytest

from buslink import create_app
from buslink.extensions import bcrypt
from buslink.storage.entities import ROLE_ADMIN, ROLE_BUS_OWNER, ROLE_PASSENGER, generate_seat_layout

PASSWORD = 'secret123'


class FakeClock:
    """Callable clock whose time only moves when a test says so."""

    def __init__(self, now=None):
        self.now = now or datetime(2025, 3, 1, 8, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def app():
    return create_app('config.TestingConfig')


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def store(app):
    return app.store


def make_user(store, username, role=ROLE_PASSENGER, password=PASSWORD):
    return store.create_user(
        username=username,
        password=bcrypt.generate_password_hash(password).decode('utf-8'),
        name=username.title(),
        email=f'{username}@buslink.lk',
        role=role,
    )


def login(client, username, password=PASSWORD):
    resp = client.post('/api/login', json={'username': username, 'password': password})
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()


@pytest.fixture
def owner(store):
    return make_user(store, 'owner', ROLE_BUS_OWNER)


@pytest.fixture
def other_owner(store):
    return make_user(store, 'rival', ROLE_BUS_OWNER)


@pytest.fixture
def passenger(store):
    return make_user(store, 'nimal')


@pytest.fixture
def admin(store):
    return make_user(store, 'admin', ROLE_ADMIN)


@pytest.fixture
def route(store):
    return store.create_route(from_location='Colombo', to_location='Kandy', distance=115, estimated_duration=180)


@pytest.fixture
def bus(store, owner):
    return store.create_bus(
        owner_id=owner.id,
        name='Hill Country Express',
        bus_number='NB-1234',
        capacity=10,
        has_ac=True,
        seat_layout=generate_seat_layout(10),
    )


@pytest.fixture
def schedule(store, bus, route):
    departure = datetime(2025, 3, 2, 7, 30)
    return store.create_schedule(
        bus_id=bus.id,
        route_id=route.id,
        departure_time=departure,
        arrival_time=departure + timedelta(hours=3),
        price=1500,
    )
