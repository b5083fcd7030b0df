from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from .entities import Booking, Bus, LocationUpdate, Review, Route, Schedule, User

Clock = Callable[[], datetime]

DEFAULT_ROUTES = [
    {'from_location': 'Colombo', 'to_location': 'Kandy', 'distance': 115, 'estimated_duration': 180},
    {'from_location': 'Colombo', 'to_location': 'Galle', 'distance': 125, 'estimated_duration': 150},
    {'from_location': 'Colombo', 'to_location': 'Jaffna', 'distance': 395, 'estimated_duration': 540},
    {'from_location': 'Kandy', 'to_location': 'Nuwara Eliya', 'distance': 80, 'estimated_duration': 120},
    {'from_location': 'Colombo', 'to_location': 'Negombo', 'distance': 40, 'estimated_duration': 60},
    {'from_location': 'Colombo', 'to_location': 'Anuradhapura', 'distance': 200, 'estimated_duration': 270},
]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Store(ABC):
    """Entity store contract shared by the in-memory and SQL backends.

    ``create_*`` assigns a fresh id and returns a copy of what was stored.
    ``get_*`` returns a copy or ``None``. ``update_*`` merges ``fields`` into
    the stored entity and returns ``None`` for unknown ids. ``delete_*``
    reports whether anything was removed; a schedule with bookings or a bus
    with schedules is refused with ``InvalidRequest``. ``create_user`` raises
    ``AlreadyExists`` for a taken username or email (case-insensitive).
    Server-side timestamps come from ``self.clock``; values supplied by
    callers are ignored.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or utc_now

    # Users
    @abstractmethod
    def get_user(self, user_id: int) -> Optional[User]: ...

    @abstractmethod
    def get_user_by_username(self, username: str) -> Optional[User]: ...

    @abstractmethod
    def get_user_by_email(self, email: str) -> Optional[User]: ...

    @abstractmethod
    def create_user(self, **fields) -> User: ...

    @abstractmethod
    def get_users_by_role(self, role: str) -> List[User]: ...

    # Buses
    @abstractmethod
    def get_bus(self, bus_id: int) -> Optional[Bus]: ...

    @abstractmethod
    def get_buses_by_owner(self, owner_id: int) -> List[Bus]: ...

    @abstractmethod
    def create_bus(self, **fields) -> Bus: ...

    @abstractmethod
    def update_bus(self, bus_id: int, fields: Dict[str, Any]) -> Optional[Bus]: ...

    @abstractmethod
    def delete_bus(self, bus_id: int) -> bool: ...

    # Routes
    @abstractmethod
    def get_route(self, route_id: int) -> Optional[Route]: ...

    @abstractmethod
    def get_all_routes(self) -> List[Route]: ...

    @abstractmethod
    def create_route(self, **fields) -> Route: ...

    @abstractmethod
    def get_route_by_locations(self, from_location: str, to_location: str) -> Optional[Route]: ...

    # Schedules
    @abstractmethod
    def get_schedule(self, schedule_id: int) -> Optional[Schedule]: ...

    @abstractmethod
    def get_schedules_by_bus(self, bus_id: int) -> List[Schedule]: ...

    @abstractmethod
    def get_schedules_by_route(self, route_id: int) -> List[Schedule]: ...

    @abstractmethod
    def get_schedules_by_date_range(self, from_date: datetime, to_date: datetime) -> List[Schedule]: ...

    @abstractmethod
    def search_schedules(self, from_location: str, to_location: str,
                         day: date) -> List[Tuple[Schedule, Bus, Route]]: ...

    @abstractmethod
    def create_schedule(self, **fields) -> Schedule: ...

    @abstractmethod
    def update_schedule(self, schedule_id: int, fields: Dict[str, Any]) -> Optional[Schedule]: ...

    @abstractmethod
    def delete_schedule(self, schedule_id: int) -> bool: ...

    # Bookings
    @abstractmethod
    def get_booking(self, booking_id: int) -> Optional[Booking]: ...

    @abstractmethod
    def get_bookings_by_user(self, user_id: int) -> List[Booking]: ...

    @abstractmethod
    def get_bookings_by_schedule(self, schedule_id: int) -> List[Booking]: ...

    @abstractmethod
    def create_booking(self, **fields) -> Booking: ...

    @abstractmethod
    def update_booking_status(self, booking_id: int, status: str) -> Optional[Booking]: ...

    # Location updates
    @abstractmethod
    def create_location_update(self, **fields) -> LocationUpdate: ...

    @abstractmethod
    def get_latest_location_update(self, bus_id: int) -> Optional[LocationUpdate]: ...

    @abstractmethod
    def get_location_history(self, bus_id: int) -> List[LocationUpdate]: ...

    # Reviews
    @abstractmethod
    def get_reviews_by_bus(self, bus_id: int) -> List[Review]: ...

    @abstractmethod
    def create_review(self, **fields) -> Review: ...

    @contextmanager
    def schedule_lock(self, schedule_id: int) -> Iterator[None]:
        """Cross-process exclusion for one schedule. No-op by default."""
        yield

    def seed_default_routes(self) -> int:
        created = 0
        for route in DEFAULT_ROUTES:
            if self.get_route_by_locations(route['from_location'], route['to_location']) is None:
                self.create_route(**route)
                created += 1
        return created
