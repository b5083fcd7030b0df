"""
JSON request validation on top of Flask-WTF.

Request bodies are JSON objects; ``load_form`` feeds them to a form and
raises ``InvalidRequest`` with the field errors when validation fails.
"""
from flask import request
from flask_wtf import FlaskForm
from werkzeug.datastructures import ImmutableMultiDict
from wtforms import Field

from buslink.errors import InvalidRequest

ISO_FORMATS = [
    '%Y-%m-%dT%H:%M:%S.%fZ',
    '%Y-%m-%dT%H:%M:%SZ',
    '%Y-%m-%dT%H:%M:%S.%f',
    '%Y-%m-%dT%H:%M:%S',
    '%Y-%m-%dT%H:%M',
    '%Y-%m-%d %H:%M:%S',
    '%Y-%m-%d %H:%M',
]


class ApiForm(FlaskForm):
    class Meta:
        csrf = False

    def present_data(self):
        """Data of the fields that were actually sent, keyed by attribute name."""
        return {name: field.data for name, field in self._fields.items() if field.raw_data}


class StringListField(Field):
    """A JSON array of strings."""

    def _value(self):
        return ','.join(self.data or [])

    def process_formdata(self, valuelist):
        self.data = [str(value) for value in valuelist if not isinstance(value, (dict, list))]


class JSONField(Field):
    """Arbitrary JSON object or array, kept as-is."""

    def process_formdata(self, valuelist):
        if len(valuelist) == 1 and isinstance(valuelist[0], dict):
            self.data = valuelist[0]
        else:
            self.data = list(valuelist)


def _form_value(value):
    # WTForms string validators expect text; booleans keep their type
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


def load_form(form_class, payload=None):
    if payload is None:
        payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise InvalidRequest('Expected a JSON object')
    formdata = ImmutableMultiDict({
        key: _form_value(value) for key, value in payload.items() if value is not None
    })
    form = form_class(formdata=formdata)
    if not form.validate():
        # report errors under the names clients sent
        errors = {
            (form._fields[key].name if key in form._fields else key): messages
            for key, messages in form.errors.items()
        }
        raise InvalidRequest(errors=errors)
    return form
