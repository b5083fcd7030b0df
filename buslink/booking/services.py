"""
Seat admission for bookings.

Every admission and cancellation for a schedule runs inside that schedule's
critical section, so availability is checked and the booking written without
another request for the same schedule interleaving. Different schedules never
wait on each other.
"""
import logging
import threading
from collections import Counter
from contextlib import contextmanager
from typing import Callable, Dict, Iterable, List, Optional, Set

from buslink.errors import Forbidden, IntegrityViolation, InvalidRequest, NotFound, SeatConflict, Unavailable
from buslink.realtime.registry import SubscriptionRegistry, owner_channel, schedule_channel
from buslink.storage.base import Store
from buslink.storage.entities import (
    BOOKING_CANCELLED, BOOKING_COMPLETED, BOOKING_CONFIRMED, Booking, Bus, Schedule, User,
)

logger = logging.getLogger(__name__)


class ScheduleLocks:
    """One lock per schedule id, created on demand and dropped when unused."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[int, list] = {}

    @contextmanager
    def hold(self, schedule_id: int):
        with self._guard:
            entry = self._locks.setdefault(schedule_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(schedule_id, None)

    def __len__(self):
        with self._guard:
            return len(self._locks)


class SeatAvailabilityResolver:

    def __init__(self, store: Store):
        self.store = store

    def held_seats(self, schedule_id: int) -> Set[str]:
        """Seats held by non-cancelled bookings of the schedule."""
        counts = Counter(
            seat
            for booking in self.store.get_bookings_by_schedule(schedule_id)
            if booking.holds_seats
            for seat in booking.seats
        )
        duplicated = sorted(seat for seat, n in counts.items() if n > 1)
        if duplicated:
            logger.critical('Schedule %s has seats held more than once: %s', schedule_id, duplicated)
            raise IntegrityViolation(f'Seats {", ".join(duplicated)} are double-booked on schedule {schedule_id}')
        return set(counts)

    def available_seats(self, schedule: Schedule, bus: Bus) -> List[str]:
        held = self.held_seats(schedule.id)
        return [seat for seat in bus.seats if seat not in held]


def _normalize_seats(seats: Optional[Iterable[str]]) -> List[str]:
    normalized = []
    for seat in seats or ():
        seat = str(seat).strip()
        if seat and seat not in normalized:
            normalized.append(seat)
    return normalized


class BookingAdmissionController:

    def __init__(self, store: Store, registry: SubscriptionRegistry,
                 locks: Optional[ScheduleLocks] = None,
                 notifier: Optional[Callable[[Booking, Schedule, Bus], None]] = None):
        self.store = store
        self.registry = registry
        self.locks = locks or ScheduleLocks()
        self.resolver = SeatAvailabilityResolver(store)
        self.notifier = notifier

    @contextmanager
    def _critical(self, schedule_id: int):
        with self.locks.hold(schedule_id), self.store.schedule_lock(schedule_id):
            yield

    def request_booking(self, schedule_id: int, seats: Iterable[str], user_id: int,
                        total_price: Optional[int] = None) -> Booking:
        """Admit or reject a seat reservation.

        Checks run in order and the first failure wins: schedule exists,
        schedule open, seats given, seats free, seats exist on the bus,
        price matches. Raises the matching ``BusLinkError``.
        """
        requested = _normalize_seats(seats)

        with self._critical(schedule_id):
            schedule = self.store.get_schedule(schedule_id)
            if schedule is None:
                raise NotFound('Schedule not found')
            if not schedule.available:
                raise Unavailable()
            if not requested:
                raise InvalidRequest('No seats selected')

            bus = self.store.get_bus(schedule.bus_id)
            if bus is None:
                raise NotFound('Bus not found')
            held = self.resolver.held_seats(schedule_id)
            conflicting = [seat for seat in requested if seat in held]
            if conflicting:
                logger.info('Rejected booking on schedule %s for user %s: seats %s taken',
                            schedule_id, user_id, conflicting)
                raise SeatConflict(conflicting)

            layout = set(bus.seats)
            if layout:
                unknown = [seat for seat in requested if seat not in layout]
                if unknown:
                    raise InvalidRequest('Unknown seats for this bus', errors={'seats': unknown})

            expected_total = schedule.price * len(requested)
            if total_price is not None and total_price != expected_total:
                raise InvalidRequest(f'Total price must be {expected_total}',
                                     errors={'totalPrice': [f'Expected {expected_total}']})

            booking = self.store.create_booking(
                user_id=user_id,
                schedule_id=schedule_id,
                seats=requested,
                total_price=expected_total,
                status=BOOKING_CONFIRMED,
            )
            logger.info('Booking %s admitted on schedule %s seats %s', booking.id, schedule_id, requested)

            self.registry.publish(owner_channel(bus.owner_id), {'type': 'new_booking', 'booking': booking.to_dict()})
            self.registry.publish(schedule_channel(schedule_id), {
                'type': 'seats_held', 'scheduleId': schedule_id, 'seats': list(booking.seats)})

        if self.notifier is not None:
            self.notifier(booking, schedule, bus)
        return booking

    def _load_for_owner_action(self, booking_id: int):
        booking = self.store.get_booking(booking_id)
        if booking is None:
            raise NotFound('Booking not found')
        schedule = self.store.get_schedule(booking.schedule_id)
        bus = self.store.get_bus(schedule.bus_id) if schedule else None
        return booking, schedule, bus

    def cancel_booking(self, booking_id: int, requester: User) -> Booking:
        """Cancel a booking for its passenger, the bus owner or an admin.

        Cancelling twice returns the booking unchanged.
        """
        booking, schedule, bus = self._load_for_owner_action(booking_id)
        is_bus_owner = bus is not None and bus.owner_id == requester.id
        if booking.user_id != requester.id and not is_bus_owner and not requester.is_admin:
            raise Forbidden("You don't have permission to cancel this booking")

        with self._critical(booking.schedule_id):
            booking = self.store.get_booking(booking_id)
            if booking.status == BOOKING_CANCELLED:
                return booking
            if booking.status == BOOKING_COMPLETED:
                raise InvalidRequest('Completed bookings cannot be cancelled')

            booking = self.store.update_booking_status(booking_id, BOOKING_CANCELLED)
            logger.info('Booking %s cancelled by user %s', booking_id, requester.id)

            if bus is not None:
                self.registry.publish(owner_channel(bus.owner_id), {
                    'type': 'booking_cancelled', 'booking': booking.to_dict()})
            self.registry.publish(schedule_channel(booking.schedule_id), {
                'type': 'seats_released', 'scheduleId': booking.schedule_id, 'seats': list(booking.seats)})
        return booking

    def complete_booking(self, booking_id: int, requester: User) -> Booking:
        booking, schedule, bus = self._load_for_owner_action(booking_id)
        if not requester.is_admin and (bus is None or bus.owner_id != requester.id):
            raise Forbidden("You don't have permission to complete this booking")

        with self._critical(booking.schedule_id):
            booking = self.store.get_booking(booking_id)
            if booking.status == BOOKING_COMPLETED:
                return booking
            if booking.status != BOOKING_CONFIRMED:
                raise InvalidRequest('Only confirmed bookings can be completed')
            return self.store.update_booking_status(booking_id, BOOKING_COMPLETED)
