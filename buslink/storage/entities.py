"""
Plain entity types handed out by every store implementation.

Stores return copies of these; mutating one never changes stored state
unless it is routed back through an ``update_*`` operation.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from flask_login import UserMixin

BOOKING_CONFIRMED = 'confirmed'
BOOKING_CANCELLED = 'cancelled'
BOOKING_COMPLETED = 'completed'
BOOKING_STATUSES = (BOOKING_CONFIRMED, BOOKING_CANCELLED, BOOKING_COMPLETED)

ROLE_PASSENGER = 'passenger'
ROLE_BUS_OWNER = 'bus_owner'
ROLE_ADMIN = 'admin'


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def seat_ids(layout: Any) -> List[str]:
    """Seat identifiers of a bus layout.

    Accepts ``{"1A": "available", ...}``, ``["1A", ...]`` or
    ``[{"seat": "1A"}, ...]``.
    """
    if not layout:
        return []
    if isinstance(layout, dict):
        return [str(seat) for seat in layout]
    seats = []
    for entry in layout:
        if isinstance(entry, dict):
            seat = entry.get('seat') or entry.get('label')
            if seat:
                seats.append(str(seat))
        else:
            seats.append(str(entry))
    return seats


def generate_seat_layout(capacity: int) -> Dict[str, str]:
    """Four seats per row, row 1 only A and B (driver's area)."""
    layout: Dict[str, str] = {}
    rows = -(-capacity // 4)
    for row in range(1, rows + 1):
        for col in 'ABCD':
            if row == 1 and col in 'CD':
                continue
            layout[f'{row}{col}'] = 'available'
    return layout


@dataclass
class User(UserMixin):
    id: int
    username: str
    password: str
    name: str
    email: str
    phone: Optional[str] = None
    role: str = ROLE_PASSENGER
    created_at: Optional[datetime] = None

    @property
    def is_bus_owner(self) -> bool:
        return self.role == ROLE_BUS_OWNER

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def to_dict(self):
        # password hash never leaves the server
        return {
            'id': self.id,
            'username': self.username,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'role': self.role,
            'createdAt': _iso(self.created_at),
        }


@dataclass
class Bus:
    id: int
    owner_id: int
    name: str
    bus_number: str
    capacity: int
    has_ac: bool = False
    has_wifi: bool = False
    has_usb: bool = False
    seat_layout: Any = field(default_factory=dict)

    @property
    def seats(self) -> List[str]:
        return seat_ids(self.seat_layout)

    def to_dict(self):
        return {
            'id': self.id,
            'ownerId': self.owner_id,
            'name': self.name,
            'busNumber': self.bus_number,
            'capacity': self.capacity,
            'hasAc': self.has_ac,
            'hasWifi': self.has_wifi,
            'hasUsb': self.has_usb,
            'seatLayout': self.seat_layout,
        }


@dataclass
class Route:
    id: int
    from_location: str
    to_location: str
    estimated_duration: int
    distance: Optional[int] = None

    def to_dict(self):
        return {
            'id': self.id,
            'fromLocation': self.from_location,
            'toLocation': self.to_location,
            'distance': self.distance,
            'estimatedDuration': self.estimated_duration,
        }


@dataclass
class Schedule:
    id: int
    bus_id: int
    route_id: int
    departure_time: datetime
    arrival_time: datetime
    price: int
    available: bool = True

    def to_dict(self):
        return {
            'id': self.id,
            'busId': self.bus_id,
            'routeId': self.route_id,
            'departureTime': _iso(self.departure_time),
            'arrivalTime': _iso(self.arrival_time),
            'price': self.price,
            'available': self.available,
        }


@dataclass
class Booking:
    id: int
    user_id: int
    schedule_id: int
    seats: List[str]
    total_price: int
    status: str = BOOKING_CONFIRMED
    booking_time: Optional[datetime] = None

    @property
    def holds_seats(self) -> bool:
        return self.status != BOOKING_CANCELLED

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'scheduleId': self.schedule_id,
            'seats': list(self.seats),
            'totalPrice': self.total_price,
            'status': self.status,
            'bookingTime': _iso(self.booking_time),
        }


@dataclass
class LocationUpdate:
    id: int
    bus_id: int
    latitude: str
    longitude: str
    speed: Optional[int] = None
    timestamp: Optional[datetime] = None

    def to_dict(self):
        return {
            'id': self.id,
            'busId': self.bus_id,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'speed': self.speed,
            'timestamp': _iso(self.timestamp),
        }


@dataclass
class Review:
    id: int
    user_id: int
    bus_id: int
    schedule_id: int
    rating: int
    comment: Optional[str] = None
    timestamp: Optional[datetime] = None

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'busId': self.bus_id,
            'scheduleId': self.schedule_id,
            'rating': self.rating,
            'comment': self.comment,
            'timestamp': _iso(self.timestamp),
        }
