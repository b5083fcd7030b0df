from wtforms import IntegerField, StringField
from wtforms.validators import DataRequired, InputRequired, NumberRange, Optional

from buslink.forms import ApiForm


class LocationReportForm(ApiForm):
    bus_id = IntegerField('Bus', validators=[InputRequired()], name='busId')
    latitude = StringField('Latitude', validators=[DataRequired()])
    longitude = StringField('Longitude', validators=[DataRequired()])
    speed = IntegerField('Speed', validators=[Optional(), NumberRange(min=0, max=300)])
