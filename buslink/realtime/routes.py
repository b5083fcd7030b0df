import json

from flask import Blueprint, Response, current_app, jsonify, request, stream_with_context
from flask_login import current_user
from wtforms import StringField
from wtforms.validators import DataRequired, Optional

from buslink.errors import NotFound
from buslink.forms import ApiForm, load_form

realtime_bp = Blueprint('realtime', __name__)


class SubscribeForm(ApiForm):
    connection = StringField('Connection', validators=[DataRequired()])
    channel = StringField('Channel', validators=[DataRequired()])


class UnsubscribeForm(ApiForm):
    connection = StringField('Connection', validators=[DataRequired()])
    channel = StringField('Channel', validators=[Optional()])


def _connection(connection_id):
    conn = current_app.registry.get(connection_id)
    if conn is None:
        raise NotFound('Connection not found')
    return conn


@realtime_bp.route('/stream')
def stream():
    registry = current_app.registry
    registry.evict_idle(current_app.config['REALTIME_IDLE_TIMEOUT'])

    user_id = current_user.id if current_user.is_authenticated else None
    conn = registry.connect(user_id=user_id)
    try:
        for channel in request.args.getlist('channel'):
            registry.subscribe(conn, channel)
    except Exception:
        registry.disconnect(conn)
        raise

    heartbeat = current_app.config['REALTIME_HEARTBEAT']
    hello = json.dumps({'type': 'connected', 'connection': conn.id, 'channels': sorted(conn.channels)})

    def event_stream():
        try:
            yield f'event: connected\ndata: {hello}\n\n'
            while not conn.closed:
                data = conn.receive(timeout=heartbeat)
                conn.touch()
                if data is None:
                    # keep-alive; also surfaces dead clients on write
                    yield ': ping\n\n'
                    continue
                yield f'data: {data}\n\n'
        except GeneratorExit:
            pass
        finally:
            registry.disconnect(conn)

    headers = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}
    return Response(stream_with_context(event_stream()), mimetype='text/event-stream', headers=headers)


@realtime_bp.route('/subscribe', methods=['POST'])
def subscribe():
    form = load_form(SubscribeForm)
    conn = _connection(form.connection.data)
    current_app.registry.subscribe(conn, form.channel.data)
    return jsonify({'connection': conn.id, 'channels': sorted(conn.channels)})


@realtime_bp.route('/unsubscribe', methods=['POST'])
def unsubscribe():
    form = load_form(UnsubscribeForm)
    conn = _connection(form.connection.data)
    current_app.registry.unsubscribe(conn, form.channel.data or None)
    return jsonify({'connection': conn.id, 'channels': sorted(conn.channels)})
