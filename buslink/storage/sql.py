"""
Database-backed entity store on top of Flask-SQLAlchemy.

Every method returns entity dataclasses, never ORM rows, so callers get the
same copy-on-read behaviour as with the in-memory store. Must be used inside
an application context.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, time, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from buslink.extensions import db
from buslink.errors import AlreadyExists, InvalidRequest, SeatConflict
from buslink.auth import models as auth_models
from buslink.booking import models as booking_models
from buslink.catalog import models as catalog_models
from buslink.tracking import models as tracking_models

from .base import Clock, Store
from .entities import BOOKING_CANCELLED

logger = logging.getLogger(__name__)

_IGNORED_ON_CREATE = ('id', 'created_at', 'booking_time', 'timestamp')


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _clean(fields):
    return {k: v for k, v in fields.items() if k not in _IGNORED_ON_CREATE}


class SQLAlchemyStore(Store):

    def __init__(self, clock: Optional[Clock] = None, history_limit: int = 100):
        super().__init__(clock)
        self._history_limit = max(1, history_limit)

    def _now(self) -> datetime:
        return _naive_utc(self.clock())

    def _add(self, row):
        db.session.add(row)
        db.session.commit()
        return row.to_entity()

    def _update(self, model, entity_id, fields):
        row = db.session.get(model, entity_id)
        if row is None:
            return None
        for key, value in fields.items():
            if key != 'id' and hasattr(row, key):
                setattr(row, key, value)
        db.session.commit()
        return row.to_entity()

    def _delete(self, model, entity_id, refused_message):
        row = db.session.get(model, entity_id)
        if row is None:
            return False
        db.session.delete(row)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise InvalidRequest(refused_message)
        return True

    @staticmethod
    def _get(model, entity_id):
        row = db.session.get(model, entity_id)
        return row.to_entity() if row is not None else None

    # Users

    def get_user(self, user_id):
        return self._get(auth_models.User, user_id)

    def get_user_by_username(self, username):
        User = auth_models.User
        row = User.query.filter(func.lower(User.username) == username.lower()).first()
        return row.to_entity() if row else None

    def get_user_by_email(self, email):
        User = auth_models.User
        row = User.query.filter(func.lower(User.email) == email.lower()).first()
        return row.to_entity() if row else None

    def create_user(self, **fields):
        if self.get_user_by_username(fields.get('username') or ''):
            raise AlreadyExists('Username already exists')
        if self.get_user_by_email(fields.get('email') or ''):
            raise AlreadyExists('Email already in use')
        user = auth_models.User(created_at=self._now(), **_clean(fields))
        db.session.add(user)
        try:
            db.session.commit()
        except IntegrityError:
            # lost a race with a concurrent registration
            db.session.rollback()
            if self.get_user_by_email(fields.get('email') or ''):
                raise AlreadyExists('Email already in use')
            raise AlreadyExists('Username already exists')
        return user.to_entity()

    def get_users_by_role(self, role):
        return [u.to_entity() for u in auth_models.User.query.filter_by(role=role).all()]

    # Buses

    def get_bus(self, bus_id):
        return self._get(catalog_models.Bus, bus_id)

    def get_buses_by_owner(self, owner_id):
        rows = catalog_models.Bus.query.filter_by(owner_id=owner_id).order_by(catalog_models.Bus.id).all()
        return [b.to_entity() for b in rows]

    def create_bus(self, **fields):
        return self._add(catalog_models.Bus(**_clean(fields)))

    def update_bus(self, bus_id, fields):
        return self._update(catalog_models.Bus, bus_id, fields)

    def delete_bus(self, bus_id):
        Schedule, LocationUpdate = catalog_models.Schedule, tracking_models.LocationUpdate
        if Schedule.query.filter_by(bus_id=bus_id).first() is not None:
            raise InvalidRequest('Bus has schedules')
        if db.session.get(catalog_models.Bus, bus_id) is not None:
            LocationUpdate.query.filter_by(bus_id=bus_id).delete(synchronize_session=False)
        return self._delete(catalog_models.Bus, bus_id, 'Bus has schedules')

    # Routes

    def get_route(self, route_id):
        return self._get(catalog_models.Route, route_id)

    def get_all_routes(self):
        return [r.to_entity() for r in catalog_models.Route.query.order_by(catalog_models.Route.id).all()]

    def create_route(self, **fields):
        return self._add(catalog_models.Route(**_clean(fields)))

    def get_route_by_locations(self, from_location, to_location):
        Route = catalog_models.Route
        row = Route.query.filter(
            func.lower(Route.from_location) == from_location.lower(),
            func.lower(Route.to_location) == to_location.lower(),
        ).first()
        return row.to_entity() if row else None

    # Schedules

    def get_schedule(self, schedule_id):
        return self._get(catalog_models.Schedule, schedule_id)

    def get_schedules_by_bus(self, bus_id):
        Schedule = catalog_models.Schedule
        return [s.to_entity() for s in Schedule.query.filter_by(bus_id=bus_id).order_by(Schedule.id).all()]

    def get_schedules_by_route(self, route_id):
        Schedule = catalog_models.Schedule
        return [s.to_entity() for s in Schedule.query.filter_by(route_id=route_id).order_by(Schedule.id).all()]

    def get_schedules_by_date_range(self, from_date, to_date):
        Schedule = catalog_models.Schedule
        rows = Schedule.query.filter(
            Schedule.departure_time >= from_date,
            Schedule.departure_time <= to_date,
        ).order_by(Schedule.departure_time).all()
        return [s.to_entity() for s in rows]

    def search_schedules(self, from_location, to_location, day):
        Schedule, Bus, Route = catalog_models.Schedule, catalog_models.Bus, catalog_models.Route
        rows = (
            db.session.query(Schedule, Bus, Route)
            .join(Bus, Schedule.bus_id == Bus.id)
            .join(Route, Schedule.route_id == Route.id)
            .filter(
                func.lower(Route.from_location) == from_location.lower(),
                func.lower(Route.to_location) == to_location.lower(),
                Schedule.available.is_(True),
                Schedule.departure_time >= datetime.combine(day, time.min),
                Schedule.departure_time <= datetime.combine(day, time.max),
            )
            .order_by(Schedule.departure_time)
            .all()
        )
        return [(s.to_entity(), b.to_entity(), r.to_entity()) for s, b, r in rows]

    def create_schedule(self, **fields):
        return self._add(catalog_models.Schedule(**_clean(fields)))

    def update_schedule(self, schedule_id, fields):
        return self._update(catalog_models.Schedule, schedule_id, fields)

    def delete_schedule(self, schedule_id):
        if booking_models.Booking.query.filter_by(schedule_id=schedule_id).first() is not None:
            raise InvalidRequest('Schedule has bookings')
        return self._delete(catalog_models.Schedule, schedule_id, 'Schedule has bookings')

    # Bookings

    def get_booking(self, booking_id):
        return self._get(booking_models.Booking, booking_id)

    def get_bookings_by_user(self, user_id):
        Booking = booking_models.Booking
        return [b.to_entity() for b in Booking.query.filter_by(user_id=user_id).order_by(Booking.id).all()]

    def get_bookings_by_schedule(self, schedule_id):
        Booking = booking_models.Booking
        return [b.to_entity() for b in Booking.query.filter_by(schedule_id=schedule_id).order_by(Booking.id).all()]

    def create_booking(self, **fields):
        fields = _clean(fields)
        booking = booking_models.Booking(booking_time=self._now(), **fields)
        for seat in booking.seats:
            booking.held_seats.append(booking_models.HeldSeat(
                schedule_id=booking.schedule_id, seat_number=seat))
        db.session.add(booking)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            taken = {
                row.seat_number for row in booking_models.HeldSeat.query.filter(
                    booking_models.HeldSeat.schedule_id == fields['schedule_id'],
                    booking_models.HeldSeat.seat_number.in_(fields['seats']),
                )
            }
            logger.warning('Database refused seats %s on schedule %s', sorted(taken), fields['schedule_id'])
            raise SeatConflict([s for s in fields['seats'] if s in taken])
        return booking.to_entity()

    def update_booking_status(self, booking_id, status):
        booking = db.session.get(booking_models.Booking, booking_id)
        if booking is None:
            return None
        booking.status = status
        if status == BOOKING_CANCELLED:
            booking.held_seats.clear()
        db.session.commit()
        return booking.to_entity()

    # Location updates

    def create_location_update(self, **fields):
        LocationUpdate = tracking_models.LocationUpdate
        update = LocationUpdate(timestamp=self._now(), **_clean(fields))
        db.session.add(update)
        db.session.flush()
        stale_ids = [
            row.id for row in LocationUpdate.query.filter_by(bus_id=update.bus_id)
            .order_by(LocationUpdate.timestamp.desc(), LocationUpdate.id.desc())
            .offset(self._history_limit).all()
        ]
        if stale_ids:
            LocationUpdate.query.filter(LocationUpdate.id.in_(stale_ids)).delete(synchronize_session=False)
        db.session.commit()
        return update.to_entity()

    def get_latest_location_update(self, bus_id):
        LocationUpdate = tracking_models.LocationUpdate
        row = (LocationUpdate.query.filter_by(bus_id=bus_id)
               .order_by(LocationUpdate.timestamp.desc(), LocationUpdate.id.desc())
               .first())
        return row.to_entity() if row else None

    def get_location_history(self, bus_id):
        LocationUpdate = tracking_models.LocationUpdate
        rows = (LocationUpdate.query.filter_by(bus_id=bus_id)
                .order_by(LocationUpdate.timestamp.asc(), LocationUpdate.id.asc())
                .all())
        return [r.to_entity() for r in rows]

    # Reviews

    def get_reviews_by_bus(self, bus_id):
        Review = catalog_models.Review
        return [r.to_entity() for r in Review.query.filter_by(bus_id=bus_id).order_by(Review.id).all()]

    def create_review(self, **fields):
        return self._add(catalog_models.Review(timestamp=self._now(), **_clean(fields)))

    @contextmanager
    def schedule_lock(self, schedule_id):
        """Row lock on the schedule for the span of one admission.

        ``SELECT ... FOR UPDATE`` is ignored by SQLite; the in-process lock
        table still serialises within a worker.
        """
        Schedule = catalog_models.Schedule
        db.session.execute(select(Schedule.id).where(Schedule.id == schedule_id).with_for_update())
        try:
            yield
        except Exception:
            db.session.rollback()
            raise
        else:
            db.session.commit()
