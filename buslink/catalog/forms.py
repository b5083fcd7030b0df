from wtforms import BooleanField, DateTimeField, IntegerField, StringField
from wtforms.validators import DataRequired, InputRequired, Length, NumberRange, Optional, ValidationError

from buslink.forms import ISO_FORMATS, ApiForm, JSONField


class BusForm(ApiForm):
    name = StringField('Name', validators=[DataRequired(), Length(max=120)])
    bus_number = StringField('Bus number', validators=[DataRequired(), Length(max=30)], name='busNumber')
    capacity = IntegerField('Capacity', validators=[InputRequired(), NumberRange(min=1, max=120)])
    has_ac = BooleanField('Air conditioning', name='hasAc')
    has_wifi = BooleanField('WiFi', name='hasWifi')
    has_usb = BooleanField('USB charging', name='hasUsb')
    seat_layout = JSONField('Seat layout', name='seatLayout')


class BusUpdateForm(BusForm):
    name = StringField('Name', validators=[Optional(), Length(max=120)])
    bus_number = StringField('Bus number', validators=[Optional(), Length(max=30)], name='busNumber')
    capacity = IntegerField('Capacity', validators=[Optional(), NumberRange(min=1, max=120)])


class RouteForm(ApiForm):
    from_location = StringField('From', validators=[DataRequired(), Length(max=120)], name='fromLocation')
    to_location = StringField('To', validators=[DataRequired(), Length(max=120)], name='toLocation')
    distance = IntegerField('Distance (km)', validators=[Optional(), NumberRange(min=0)])
    estimated_duration = IntegerField('Estimated duration (minutes)',
                                      validators=[InputRequired(), NumberRange(min=1)],
                                      name='estimatedDuration')


class ScheduleForm(ApiForm):
    bus_id = IntegerField('Bus', validators=[InputRequired()], name='busId')
    route_id = IntegerField('Route', validators=[InputRequired()], name='routeId')
    departure_time = DateTimeField('Departure', format=ISO_FORMATS, validators=[InputRequired()],
                                   name='departureTime')
    arrival_time = DateTimeField('Arrival', format=ISO_FORMATS, validators=[InputRequired()],
                                 name='arrivalTime')
    price = IntegerField('Price', validators=[InputRequired(), NumberRange(min=0)])
    available = BooleanField('Available', default=True)

    def validate_arrival_time(self, field):
        if self.departure_time.data and field.data and field.data <= self.departure_time.data:
            raise ValidationError('Arrival must be after departure')


class ScheduleUpdateForm(ScheduleForm):
    bus_id = IntegerField('Bus', validators=[Optional()], name='busId')
    route_id = IntegerField('Route', validators=[Optional()], name='routeId')
    departure_time = DateTimeField('Departure', format=ISO_FORMATS, validators=[Optional()],
                                   name='departureTime')
    arrival_time = DateTimeField('Arrival', format=ISO_FORMATS, validators=[Optional()],
                                 name='arrivalTime')
    price = IntegerField('Price', validators=[Optional(), NumberRange(min=0)])


class ReviewForm(ApiForm):
    bus_id = IntegerField('Bus', validators=[InputRequired()], name='busId')
    schedule_id = IntegerField('Schedule', validators=[InputRequired()], name='scheduleId')
    rating = IntegerField('Rating', validators=[InputRequired(), NumberRange(min=1, max=5)])
    comment = StringField('Comment', validators=[Optional(), Length(max=1000)])
