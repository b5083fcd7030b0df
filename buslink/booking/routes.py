from flask import Blueprint, current_app, jsonify
from flask_login import current_user, login_required

from buslink.auth.decorators import bus_owner_required, role_required
from buslink.booking.forms import BookingRequestForm
from buslink.errors import Forbidden, NotFound
from buslink.forms import load_form
from buslink.storage.entities import ROLE_ADMIN, ROLE_BUS_OWNER

booking_bp = Blueprint('booking', __name__)


def _can_view(booking):
    if booking.user_id == current_user.id or current_user.is_admin:
        return True
    store = current_app.store
    schedule = store.get_schedule(booking.schedule_id)
    bus = store.get_bus(schedule.bus_id) if schedule else None
    return bus is not None and bus.owner_id == current_user.id


@booking_bp.route('/bookings', methods=['POST'])
@login_required
def create_booking():
    form = load_form(BookingRequestForm)
    booking = current_app.bookings.request_booking(
        schedule_id=form.schedule_id.data,
        seats=form.seats.data,
        user_id=current_user.id,
        total_price=form.total_price.data,
    )
    return jsonify(booking.to_dict()), 201


@booking_bp.route('/bookings')
@login_required
def list_bookings():
    store = current_app.store
    result = []
    for booking in store.get_bookings_by_user(current_user.id):
        schedule = store.get_schedule(booking.schedule_id)
        details = None
        if schedule is not None:
            bus = store.get_bus(schedule.bus_id)
            route = store.get_route(schedule.route_id)
            details = dict(schedule.to_dict(),
                           bus=bus.to_dict() if bus else None,
                           route=route.to_dict() if route else None)
        result.append(dict(booking.to_dict(), schedule=details))
    return jsonify(result)


@booking_bp.route('/bookings/<int:booking_id>')
@login_required
def get_booking(booking_id):
    booking = current_app.store.get_booking(booking_id)
    if booking is None:
        raise NotFound('Booking not found')
    if not _can_view(booking):
        raise Forbidden("You don't have permission to view this booking")
    return jsonify(booking.to_dict())


@booking_bp.route('/bookings/<int:booking_id>/cancel', methods=['POST'])
@login_required
def cancel_booking(booking_id):
    booking = current_app.bookings.cancel_booking(booking_id, current_user)
    return jsonify(booking.to_dict())


@booking_bp.route('/bookings/<int:booking_id>/complete', methods=['POST'])
@role_required(ROLE_BUS_OWNER, ROLE_ADMIN)
def complete_booking(booking_id):
    booking = current_app.bookings.complete_booking(booking_id, current_user)
    return jsonify(booking.to_dict())


@booking_bp.route('/schedules/<int:schedule_id>/seats')
def seat_map(schedule_id):
    store = current_app.store
    schedule = store.get_schedule(schedule_id)
    if schedule is None:
        raise NotFound('Schedule not found')
    bus = store.get_bus(schedule.bus_id)
    if bus is None:
        raise NotFound('Bus not found')
    resolver = current_app.bookings.resolver
    return jsonify({
        'scheduleId': schedule_id,
        'held': sorted(resolver.held_seats(schedule_id)),
        'available': resolver.available_seats(schedule, bus),
    })


@booking_bp.route('/schedules/<int:schedule_id>/bookings')
@bus_owner_required
def schedule_bookings(schedule_id):
    store = current_app.store
    schedule = store.get_schedule(schedule_id)
    if schedule is None:
        raise NotFound('Schedule not found')
    bus = store.get_bus(schedule.bus_id)
    if bus is None or bus.owner_id != current_user.id:
        raise Forbidden("You don't have permission to view these bookings")
    result = []
    for booking in store.get_bookings_by_schedule(schedule_id):
        passenger = store.get_user(booking.user_id)
        result.append(dict(booking.to_dict(), passengerName=passenger.name if passenger else None))
    return jsonify(result)
