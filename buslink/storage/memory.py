"""
In-process entity store: one dict per entity kind, monotonic ids, deep
copies in and out. Suitable for single-process deployments and tests.
"""
import bisect
import copy
import itertools
import threading
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional, Tuple

from buslink.errors import AlreadyExists, InvalidRequest

from .base import Clock, Store
from .entities import Booking, Bus, LocationUpdate, Review, Route, Schedule, User

_IGNORED_ON_CREATE = ('id', 'created_at', 'booking_time', 'timestamp')


def _same_day(value: datetime, day: date) -> bool:
    start = datetime.combine(day, time.min, tzinfo=value.tzinfo)
    end = datetime.combine(day, time.max, tzinfo=value.tzinfo)
    return start <= value <= end


class MemoryStore(Store):

    def __init__(self, clock: Optional[Clock] = None, history_limit: int = 100):
        super().__init__(clock)
        self._lock = threading.RLock()
        self._tables: Dict[type, Dict[int, Any]] = {
            kind: {} for kind in (User, Bus, Route, Schedule, Booking, LocationUpdate, Review)
        }
        self._ids = {kind: itertools.count(1) for kind in self._tables}
        self._history_limit = max(1, history_limit)
        # per bus, ordered by (timestamp, id); keys kept alongside for bisect
        self._history: Dict[int, List[LocationUpdate]] = {}
        self._history_keys: Dict[int, List[Tuple[Any, int]]] = {}

    # -- helpers -------------------------------------------------------------

    def _insert(self, kind, fields: Dict[str, Any], **stamped):
        data = {k: v for k, v in fields.items() if k not in _IGNORED_ON_CREATE}
        data.update(stamped)
        with self._lock:
            entity = kind(id=next(self._ids[kind]), **copy.deepcopy(data))
            self._tables[kind][entity.id] = entity
            return copy.deepcopy(entity)

    def _get(self, kind, entity_id):
        with self._lock:
            entity = self._tables[kind].get(entity_id)
            return copy.deepcopy(entity) if entity is not None else None

    def _filter(self, kind, predicate) -> List[Any]:
        with self._lock:
            return [copy.deepcopy(e) for e in self._tables[kind].values() if predicate(e)]

    def _update(self, kind, entity_id, fields: Dict[str, Any]):
        with self._lock:
            entity = self._tables[kind].get(entity_id)
            if entity is None:
                return None
            for key, value in fields.items():
                if key == 'id' or not hasattr(entity, key):
                    continue
                setattr(entity, key, copy.deepcopy(value))
            return copy.deepcopy(entity)

    def _delete(self, kind, entity_id) -> bool:
        with self._lock:
            return self._tables[kind].pop(entity_id, None) is not None

    # -- users ---------------------------------------------------------------

    def get_user(self, user_id):
        return self._get(User, user_id)

    def get_user_by_username(self, username):
        matches = self._filter(User, lambda u: u.username.lower() == username.lower())
        return matches[0] if matches else None

    def get_user_by_email(self, email):
        matches = self._filter(User, lambda u: u.email.lower() == email.lower())
        return matches[0] if matches else None

    def create_user(self, **fields):
        with self._lock:
            username = fields.get('username') or ''
            email = fields.get('email') or ''
            for user in self._tables[User].values():
                if user.username.lower() == username.lower():
                    raise AlreadyExists('Username already exists')
                if email and (user.email or '').lower() == email.lower():
                    raise AlreadyExists('Email already in use')
            return self._insert(User, fields, created_at=self.clock())

    def get_users_by_role(self, role):
        return self._filter(User, lambda u: u.role == role)

    # -- buses ---------------------------------------------------------------

    def get_bus(self, bus_id):
        return self._get(Bus, bus_id)

    def get_buses_by_owner(self, owner_id):
        return self._filter(Bus, lambda b: b.owner_id == owner_id)

    def create_bus(self, **fields):
        return self._insert(Bus, fields)

    def update_bus(self, bus_id, fields):
        return self._update(Bus, bus_id, fields)

    def delete_bus(self, bus_id):
        with self._lock:
            if any(s.bus_id == bus_id for s in self._tables[Schedule].values()):
                raise InvalidRequest('Bus has schedules')
            if not self._delete(Bus, bus_id):
                return False
            for update in self._history.pop(bus_id, []):
                self._tables[LocationUpdate].pop(update.id, None)
            self._history_keys.pop(bus_id, None)
            return True

    # -- routes --------------------------------------------------------------

    def get_route(self, route_id):
        return self._get(Route, route_id)

    def get_all_routes(self):
        return self._filter(Route, lambda r: True)

    def create_route(self, **fields):
        return self._insert(Route, fields)

    def get_route_by_locations(self, from_location, to_location):
        matches = self._filter(Route, lambda r: (
            r.from_location.lower() == from_location.lower()
            and r.to_location.lower() == to_location.lower()))
        return matches[0] if matches else None

    # -- schedules -----------------------------------------------------------

    def get_schedule(self, schedule_id):
        return self._get(Schedule, schedule_id)

    def get_schedules_by_bus(self, bus_id):
        return self._filter(Schedule, lambda s: s.bus_id == bus_id)

    def get_schedules_by_route(self, route_id):
        return self._filter(Schedule, lambda s: s.route_id == route_id)

    def get_schedules_by_date_range(self, from_date, to_date):
        return self._filter(Schedule, lambda s: from_date <= s.departure_time <= to_date)

    def search_schedules(self, from_location, to_location, day):
        with self._lock:
            route_ids = {
                r.id for r in self._tables[Route].values()
                if r.from_location.lower() == from_location.lower()
                and r.to_location.lower() == to_location.lower()
            }
            if not route_ids:
                return []
            results = []
            for schedule in self._tables[Schedule].values():
                if schedule.route_id not in route_ids or not schedule.available:
                    continue
                if not _same_day(schedule.departure_time, day):
                    continue
                bus = self._tables[Bus].get(schedule.bus_id)
                route = self._tables[Route].get(schedule.route_id)
                if bus is None or route is None:
                    continue
                results.append(copy.deepcopy((schedule, bus, route)))
            return results

    def create_schedule(self, **fields):
        return self._insert(Schedule, fields)

    def update_schedule(self, schedule_id, fields):
        return self._update(Schedule, schedule_id, fields)

    def delete_schedule(self, schedule_id):
        with self._lock:
            if any(b.schedule_id == schedule_id for b in self._tables[Booking].values()):
                raise InvalidRequest('Schedule has bookings')
            return self._delete(Schedule, schedule_id)

    # -- bookings ------------------------------------------------------------

    def get_booking(self, booking_id):
        return self._get(Booking, booking_id)

    def get_bookings_by_user(self, user_id):
        return self._filter(Booking, lambda b: b.user_id == user_id)

    def get_bookings_by_schedule(self, schedule_id):
        return self._filter(Booking, lambda b: b.schedule_id == schedule_id)

    def create_booking(self, **fields):
        return self._insert(Booking, fields, booking_time=self.clock())

    def update_booking_status(self, booking_id, status):
        return self._update(Booking, booking_id, {'status': status})

    # -- location updates ----------------------------------------------------

    def create_location_update(self, **fields):
        with self._lock:
            update = self._insert(LocationUpdate, fields, timestamp=self.clock())
            history = self._history.setdefault(update.bus_id, [])
            keys = self._history_keys.setdefault(update.bus_id, [])
            key = (update.timestamp, update.id)
            position = bisect.bisect(keys, key)
            keys.insert(position, key)
            history.insert(position, update)
            while len(history) > self._history_limit:
                keys.pop(0)
                evicted = history.pop(0)
                self._tables[LocationUpdate].pop(evicted.id, None)
            return copy.deepcopy(update)

    def get_latest_location_update(self, bus_id):
        with self._lock:
            history = self._history.get(bus_id)
            return copy.deepcopy(history[-1]) if history else None

    def get_location_history(self, bus_id):
        with self._lock:
            return copy.deepcopy(self._history.get(bus_id, []))

    # -- reviews -------------------------------------------------------------

    def get_reviews_by_bus(self, bus_id):
        return self._filter(Review, lambda r: r.bus_id == bus_id)

    def create_review(self, **fields):
        return self._insert(Review, fields, timestamp=self.clock())
