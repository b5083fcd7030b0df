from flask import Blueprint, current_app, jsonify
from flask_login import current_user

from buslink.auth.decorators import bus_owner_required
from buslink.errors import NotFound
from buslink.forms import load_form
from buslink.tracking.forms import LocationReportForm

tracking_bp = Blueprint('tracking', __name__)


@tracking_bp.route('/location', methods=['POST'])
@bus_owner_required
def report_location():
    form = load_form(LocationReportForm)
    update = current_app.locations.report_location(
        bus_id=form.bus_id.data,
        latitude=form.latitude.data,
        longitude=form.longitude.data,
        speed=form.speed.data,
        reporter=current_user,
    )
    return jsonify(update.to_dict()), 201


@tracking_bp.route('/location/<int:bus_id>')
def latest_location(bus_id):
    if current_app.store.get_bus(bus_id) is None:
        raise NotFound('Bus not found')
    update = current_app.locations.get_latest_location(bus_id)
    if update is None:
        raise NotFound('No location data available for this bus')
    return jsonify(update.to_dict())


@tracking_bp.route('/location/<int:bus_id>/history')
def location_history(bus_id):
    if current_app.store.get_bus(bus_id) is None:
        raise NotFound('Bus not found')
    return jsonify([u.to_dict() for u in current_app.store.get_location_history(bus_id)])
