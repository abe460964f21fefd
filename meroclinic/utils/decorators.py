from collections import namedtuple
from functools import wraps
from flask import jsonify
from flask_jwt_extended import get_jwt_identity, get_jwt

# The authenticated caller as asserted by the identity service's token
Actor = namedtuple('Actor', ['user_id', 'role'])


def get_current_actor():
    """Build the Actor for the current JWT-authenticated request."""
    return Actor(user_id=int(get_jwt_identity()), role=get_jwt().get('role'))


def require_role(*roles):
    """
    Decorator to require specific roles
    Usage: @require_role('doctor', 'patient')
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            """
            Require that the current JWT-authenticated user has one of the given roles.
            Must be used together with @jwt_required() on the route.
            """
            try:
                actor = get_current_actor()
            except (TypeError, ValueError):
                return jsonify({
                    'success': False,
                    'error': 'Authentication required'
                }), 401

            if actor.role not in roles:
                return jsonify({
                    'success': False,
                    'error': f'Permission denied. Required roles: {", ".join(roles)}'
                }), 403

            return f(*args, **kwargs)
        return decorated_function
    return decorator
