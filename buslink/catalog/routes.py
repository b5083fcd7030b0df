from datetime import datetime

from flask import current_app, jsonify, request
from flask_login import current_user, login_required

from buslink.auth.decorators import admin_required, bus_owner_required
from buslink.catalog import bp
from buslink.catalog.forms import BusForm, BusUpdateForm, ReviewForm, RouteForm, ScheduleForm, ScheduleUpdateForm
from buslink.errors import Forbidden, InvalidRequest, NotFound
from buslink.forms import load_form
from buslink.storage.entities import BOOKING_COMPLETED, generate_seat_layout


def _owned_bus(bus_id, message):
    bus = current_app.store.get_bus(bus_id)
    if bus is None:
        raise NotFound('Bus not found')
    if bus.owner_id != current_user.id:
        raise Forbidden(message)
    return bus


def _owned_schedule(schedule_id, message):
    store = current_app.store
    schedule = store.get_schedule(schedule_id)
    if schedule is None:
        raise NotFound('Schedule not found')
    bus = store.get_bus(schedule.bus_id)
    if bus is None or bus.owner_id != current_user.id:
        raise Forbidden(message)
    return schedule


# Buses

@bp.route('/buses')
@login_required
def list_buses():
    store = current_app.store
    if current_user.is_bus_owner:
        return jsonify([b.to_dict() for b in store.get_buses_by_owner(current_user.id)])
    if current_user.is_admin:
        all_buses = []
        for owner in store.get_users_by_role('bus_owner'):
            for bus in store.get_buses_by_owner(owner.id):
                all_buses.append(dict(bus.to_dict(), ownerName=owner.name))
        return jsonify(all_buses)
    return jsonify({'message': 'Access denied'}), 403


@bp.route('/buses', methods=['POST'])
@bus_owner_required
def create_bus():
    form = load_form(BusForm)
    seat_layout = form.seat_layout.data or generate_seat_layout(form.capacity.data)
    bus = current_app.store.create_bus(
        owner_id=current_user.id,
        name=form.name.data,
        bus_number=form.bus_number.data,
        capacity=form.capacity.data,
        has_ac=form.has_ac.data,
        has_wifi=form.has_wifi.data,
        has_usb=form.has_usb.data,
        seat_layout=seat_layout,
    )
    current_app.logger.info('Bus %s created by owner %s', bus.id, current_user.id)
    return jsonify(bus.to_dict()), 201


@bp.route('/buses/<int:bus_id>')
@login_required
def get_bus(bus_id):
    bus = current_app.store.get_bus(bus_id)
    if bus is None:
        raise NotFound('Bus not found')
    if current_user.is_bus_owner and bus.owner_id != current_user.id:
        raise Forbidden("You don't have permission to view this bus")
    return jsonify(bus.to_dict())


@bp.route('/buses/<int:bus_id>', methods=['PUT'])
@bus_owner_required
def update_bus(bus_id):
    _owned_bus(bus_id, "You don't have permission to update this bus")
    form = load_form(BusUpdateForm)
    bus = current_app.store.update_bus(bus_id, form.present_data())
    return jsonify(bus.to_dict())


@bp.route('/buses/<int:bus_id>', methods=['DELETE'])
@bus_owner_required
def delete_bus(bus_id):
    _owned_bus(bus_id, "You don't have permission to delete this bus")
    if not current_app.store.delete_bus(bus_id):
        return jsonify({'message': 'Failed to delete bus'}), 500
    return '', 204


@bp.route('/buses/<int:bus_id>/details')
def bus_details(bus_id):
    store = current_app.store
    bus = store.get_bus(bus_id)
    if bus is None:
        raise NotFound('Bus not found')
    reviews = store.get_reviews_by_bus(bus_id)
    average = sum(r.rating for r in reviews) / len(reviews) if reviews else 0
    return jsonify(dict(bus.to_dict(), reviews=[r.to_dict() for r in reviews], averageRating=average))


# Routes

@bp.route('/routes')
def list_routes():
    return jsonify([r.to_dict() for r in current_app.store.get_all_routes()])


@bp.route('/routes', methods=['POST'])
@admin_required
def create_route():
    form = load_form(RouteForm)
    store = current_app.store
    if store.get_route_by_locations(form.from_location.data, form.to_location.data):
        return jsonify({'message': 'Route already exists'}), 400
    route = store.create_route(
        from_location=form.from_location.data,
        to_location=form.to_location.data,
        distance=form.distance.data,
        estimated_duration=form.estimated_duration.data,
    )
    return jsonify(route.to_dict()), 201


# Schedules

@bp.route('/schedules')
@bus_owner_required
def list_schedules():
    store = current_app.store
    result = []
    for bus in store.get_buses_by_owner(current_user.id):
        for schedule in store.get_schedules_by_bus(bus.id):
            route = store.get_route(schedule.route_id)
            result.append(dict(schedule.to_dict(), route=route.to_dict() if route else None))
    return jsonify(result)


@bp.route('/schedules', methods=['POST'])
@bus_owner_required
def create_schedule():
    form = load_form(ScheduleForm)
    store = current_app.store
    bus = store.get_bus(form.bus_id.data)
    if bus is None or bus.owner_id != current_user.id:
        raise Forbidden("You don't have permission to create schedules for this bus")
    if store.get_route(form.route_id.data) is None:
        raise InvalidRequest('Invalid route')

    schedule = store.create_schedule(
        bus_id=form.bus_id.data,
        route_id=form.route_id.data,
        departure_time=form.departure_time.data,
        arrival_time=form.arrival_time.data,
        price=form.price.data,
        available=form.available.data if form.available.raw_data else True,
    )
    return jsonify(schedule.to_dict()), 201


@bp.route('/schedules/<int:schedule_id>', methods=['PUT'])
@bus_owner_required
def update_schedule(schedule_id):
    existing = _owned_schedule(schedule_id, "You don't have permission to update this schedule")
    form = load_form(ScheduleUpdateForm)
    fields = form.present_data()
    store = current_app.store

    if 'bus_id' in fields:
        new_bus = store.get_bus(fields['bus_id'])
        if new_bus is None or new_bus.owner_id != current_user.id:
            raise Forbidden("You don't have permission to assign this bus")
    if 'route_id' in fields and store.get_route(fields['route_id']) is None:
        raise InvalidRequest('Invalid route')

    departure = fields.get('departure_time', existing.departure_time)
    arrival = fields.get('arrival_time', existing.arrival_time)
    if arrival <= departure:
        raise InvalidRequest(errors={'arrivalTime': ['Arrival must be after departure']})

    schedule = store.update_schedule(schedule_id, fields)
    return jsonify(schedule.to_dict())


@bp.route('/schedules/<int:schedule_id>', methods=['DELETE'])
@bus_owner_required
def delete_schedule(schedule_id):
    _owned_schedule(schedule_id, "You don't have permission to delete this schedule")
    if not current_app.store.delete_schedule(schedule_id):
        return jsonify({'message': 'Failed to delete schedule'}), 500
    return '', 204


@bp.route('/search')
def search():
    origin = request.args.get('from')
    destination = request.args.get('to')
    day = request.args.get('date')
    if not origin or not destination or not day:
        raise InvalidRequest('Missing required parameters')
    try:
        search_date = datetime.fromisoformat(day[:10]).date()
    except ValueError:
        raise InvalidRequest('Invalid date format')

    results = current_app.store.search_schedules(origin, destination, search_date)
    return jsonify([
        dict(schedule.to_dict(), bus=bus.to_dict(), route=route.to_dict())
        for schedule, bus, route in results
    ])


# Reviews

@bp.route('/reviews', methods=['POST'])
@login_required
def create_review():
    form = load_form(ReviewForm)
    store = current_app.store
    if store.get_bus(form.bus_id.data) is None:
        raise InvalidRequest('Bus not found')
    if store.get_schedule(form.schedule_id.data) is None:
        raise InvalidRequest('Schedule not found')

    travelled = any(
        b.schedule_id == form.schedule_id.data and b.status == BOOKING_COMPLETED
        for b in store.get_bookings_by_user(current_user.id)
    )
    if not travelled:
        raise Forbidden('You can only review buses you have traveled in')

    review = store.create_review(
        user_id=current_user.id,
        bus_id=form.bus_id.data,
        schedule_id=form.schedule_id.data,
        rating=form.rating.data,
        comment=form.comment.data or None,
    )
    return jsonify(review.to_dict()), 201


@bp.route('/reviews/<int:bus_id>')
def list_reviews(bus_id):
    store = current_app.store
    reviews = []
    for review in store.get_reviews_by_bus(bus_id):
        user = store.get_user(review.user_id)
        reviews.append(dict(review.to_dict(), username=user.name if user else 'Anonymous'))
    return jsonify(reviews)
