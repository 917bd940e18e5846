"""
Request authentication.

Bearer tokens are HS256 JWTs carrying a ``user_id`` claim, signed with
JWT_SECRET by the account service. The payment service calls in with a
shared X-API-Key instead.
"""
import datetime
import hmac
from functools import wraps

import jwt
from flask import current_app, jsonify, request

from fixit import db
from fixit.errors import TechnicianNotFound
from fixit.models import Technician, User


def generate_token(user_id, expires_in=datetime.timedelta(days=30)):
    """Generate JWT token for user"""
    payload = {
        'user_id': user_id,
        'exp': datetime.datetime.now(datetime.timezone.utc) + expires_in,
    }
    return jwt.encode(payload, current_app.config['JWT_SECRET'], algorithm=current_app.config['JWT_ALGORITHM'])


def verify_token(token):
    """Verify JWT token and return user_id"""
    try:
        payload = jwt.decode(
            token,
            current_app.config['JWT_SECRET'],
            algorithms=[current_app.config['JWT_ALGORITHM']],
        )
        return payload.get('user_id')
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def require_auth(f):
    """Decorator to require authentication"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = request.headers.get('Authorization', '').replace('Bearer ', '')
        user_id = verify_token(token) if token else None
        if not user_id or not db.session.get(User, user_id):
            return jsonify({'success': False, 'error': 'Unauthorized'}), 401
        return f(user_id=user_id, *args, **kwargs)
    return decorated_function


def require_role(*roles):
    """Wrap require_auth and additionally check the user's role."""
    def decorator(f):
        @wraps(f)
        @require_auth
        def wrapper(user_id, *args, **kwargs):
            user = db.session.get(User, user_id)
            if user.role not in roles:
                return jsonify({'success': False, 'error': 'Forbidden'}), 403
            return f(user_id=user_id, *args, **kwargs)
        return wrapper
    return decorator


require_admin = require_role('admin')
require_customer = require_role('customer')


def require_technician(f):
    """Resolve the caller's technician profile and pass it as ``technician``."""
    @wraps(f)
    @require_role('technician')
    def wrapper(user_id, *args, **kwargs):
        technician = Technician.query.filter_by(user_id=user_id).first()
        if not technician:
            raise TechnicianNotFound()
        return f(technician=technician, *args, **kwargs)
    return wrapper


def require_api_key(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        api_key = request.headers.get('X-API-Key', '')
        if not hmac.compare_digest(api_key.encode(), current_app.config['API_KEY'].encode()):
            return jsonify({'success': False, 'error': 'Invalid API key'}), 401
        return f(*args, **kwargs)
    return decorated_function
