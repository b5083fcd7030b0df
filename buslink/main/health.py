"""
Health check endpoints for monitoring server status
"""
from flask import Blueprint, jsonify, current_app
from sqlalchemy import text
import time

from buslink.extensions import db

health_bp = Blueprint('health', __name__, url_prefix='/health')


def _check_storage():
    """Touch the backing store; raises if it is unreachable."""
    if current_app.config.get('STORAGE_BACKEND') == 'sqlalchemy':
        db.session.execute(text('SELECT 1'))
        return 'connected'
    return 'memory'


@health_bp.route('/')
def health_check():
    """Basic health check endpoint"""
    try:
        storage = _check_storage()
        return jsonify({
            'status': 'healthy',
            'timestamp': time.time(),
            'storage': storage,
            'realtime': {
                'connections': len(current_app.registry),
                'scheduleLocks': len(current_app.bookings.locks),
            },
            'version': '1.0.0'
        }), 200
    except Exception as e:
        current_app.logger.error(f'Health check failed: {str(e)}')
        return jsonify({
            'status': 'unhealthy',
            'timestamp': time.time(),
            'error': str(e)
        }), 500


@health_bp.route('/ready')
def readiness_check():
    """Readiness check for load balancers"""
    try:
        _check_storage()
        return jsonify({
            'status': 'ready',
            'timestamp': time.time()
        }), 200
    except Exception as e:
        return jsonify({
            'status': 'not_ready',
            'timestamp': time.time(),
            'error': str(e)
        }), 503
