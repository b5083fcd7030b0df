from functools import wraps

from flask import jsonify
from flask_login import current_user


def role_required(*roles):
    """Require an authenticated user holding one of ``roles``."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated:
                return jsonify({'message': 'Unauthorized'}), 401
            if current_user.role not in roles:
                return jsonify({'message': f'Forbidden: Only {" or ".join(roles)} can access this resource'}), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator


bus_owner_required = role_required('bus_owner')
admin_required = role_required('admin')
