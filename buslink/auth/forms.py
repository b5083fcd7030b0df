from wtforms import StringField, PasswordField, SelectField
from wtforms.validators import DataRequired, Length, Email, Optional

from buslink.forms import ApiForm
from buslink.storage.entities import ROLE_BUS_OWNER, ROLE_PASSENGER


class RegistrationForm(ApiForm):
    username = StringField('Username', validators=[DataRequired(), Length(min=3, max=30)])
    password = StringField('Password', validators=[
        DataRequired(),
        Length(min=6, message='Password must be at least 6 characters long')
    ])
    name = StringField('Name', validators=[DataRequired(), Length(min=2, max=120)])
    email = StringField('Email', validators=[DataRequired(), Email()])
    phone = StringField('Phone', validators=[Optional(), Length(max=30)])
    # admins are never self-registered
    role = SelectField('Role', choices=[ROLE_PASSENGER, ROLE_BUS_OWNER], default=ROLE_PASSENGER)


class LoginForm(ApiForm):
    username = StringField('Username or email', validators=[DataRequired()])
    password = PasswordField('Password', validators=[DataRequired()])
