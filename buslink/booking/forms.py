from wtforms import IntegerField
from wtforms.validators import InputRequired, NumberRange, Optional

from buslink.forms import ApiForm, StringListField


class BookingRequestForm(ApiForm):
    schedule_id = IntegerField('Schedule', validators=[InputRequired()], name='scheduleId')
    # emptiness is an admission decision, not a form error
    seats = StringListField('Seats')
    total_price = IntegerField('Total price', validators=[Optional(), NumberRange(min=0)], name='totalPrice')
