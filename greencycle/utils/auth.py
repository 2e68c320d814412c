import jwt
from datetime import datetime, timezone
from functools import wraps
from flask import request, jsonify, current_app

from greencycle import db
from greencycle.errors import NotFoundOrUnauthorized
from greencycle.models import User


def generate_token(user_id: str, role: str) -> str:
    """Generate JWT token with user and role information"""
    now = datetime.now(timezone.utc)
    payload = {
        'user_id': user_id,
        'role': role,
        'exp': now + current_app.config['JWT_ACCESS_TOKEN_EXPIRES'],
        'iat': now
    }
    return jwt.encode(
        payload,
        current_app.config['JWT_SECRET_KEY'],
        algorithm=current_app.config['JWT_ALGORITHM']
    )


def decode_token(token: str) -> dict:
    """Decode and verify JWT token"""
    try:
        return jwt.decode(
            token,
            current_app.config['JWT_SECRET_KEY'],
            algorithms=[current_app.config['JWT_ALGORITHM']]
        )
    except jwt.ExpiredSignatureError:
        raise ValueError('Token has expired')
    except jwt.InvalidTokenError:
        raise ValueError('Invalid token')


def require_auth(f):
    """Decorator to require authentication for routes"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get('Authorization')

        if not auth_header:
            return jsonify({'success': False, 'error': 'Missing authorization header'}), 401

        try:
            # Extract token from "Bearer <token>"
            token = auth_header.split(' ')[1] if ' ' in auth_header else auth_header
            payload = decode_token(token)

            # Attach user info to request
            request.user_id = payload['user_id']
            request.user_role = payload['role']

        except (ValueError, IndexError, KeyError) as e:
            return jsonify({'success': False, 'error': str(e)}), 401

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles):
    """Decorator to require specific role(s) for routes"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not hasattr(request, 'user_role'):
                return jsonify({'success': False, 'error': 'Authentication required'}), 401

            if request.user_role not in roles:
                return jsonify({'success': False, 'error': 'Insufficient permissions'}), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def current_user() -> User:
    """The active account behind the request's token"""
    user = db.session.get(User, request.user_id)
    if user is None or not user.is_active:
        raise NotFoundOrUnauthorized('User not found')
    return user
