"""Middleware for request identity."""
from functools import wraps
from flask import session, g, jsonify, current_app
from coursemart.database import get_session
from coursemart.identity import Identity
from coursemart.models import AppUser


def load_identity():
    """
    Resolve the logged-in user into g once per request.

    Sets g.user and g.identity (an Identity value handed to services) when
    the session holds an active user id.
    """
    g.user = None
    g.identity = None

    try:
        user_id = session.get('user_id')
        if user_id:
            db_session = get_session()
            if not db_session:
                return

            user = db_session.query(AppUser).filter_by(id=user_id, active=True).first()
            if user:
                g.user = user
                g.identity = Identity(user_id=user.id, email=user.email, full_name=user.full_name)
            else:
                session.pop('user_id', None)
    except Exception as e:
        # Context loading must never take the request down
        current_app.logger.error(f"Error in load_identity: {e}")


def require_login(f):
    """
    Decorator: Require user to be logged in.

    Returns a 401 JSON error for anonymous requests.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('identity') is None:
            return jsonify({'status': 'error', 'message': 'Authentication required'}), 401
        return f(*args, **kwargs)
    return decorated_function


def require_tutor(f):
    """
    Decorator: Require a TUTOR or MENTOR account.

    Must be used AFTER require_login.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.user is None or not g.user.is_tutor():
            return jsonify({'status': 'error', 'message': 'Tutor account required'}), 403
        return f(*args, **kwargs)
    return decorated_function
