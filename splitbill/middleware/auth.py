from functools import wraps

from flask import current_app, g, request

from splitbill.errors import Unauthenticated


def _services():
    return current_app.extensions['splitbill']


def bearer_token():
    auth_header = request.headers.get('Authorization', '')
    return auth_header[7:].strip() if auth_header.startswith('Bearer ') else None


def authenticate(refresh=False):
    """Resolve the bearer token to a user and store both on ``g``"""
    token = bearer_token()
    if not token:
        raise Unauthenticated('Unauthenticated. Please provide a valid authentication token.')

    services = _services()
    payload = services['token_service'].decode(token)

    if bool(payload.get('rt')) != refresh:
        raise Unauthenticated('Invalid refresh token' if refresh else 'Invalid or expired token')

    user = services['user_service'].get_user(int(payload['sub']))
    if not user:
        raise Unauthenticated('User no longer exists')

    g.token_payload = payload
    g.user = user
    return user


def auth_required(f):
    """Decorator to require an access token"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        authenticate()
        return f(*args, **kwargs)

    return decorated_function


def refresh_token_required(f):
    """Decorator to require a refresh token (claim ``rt``)"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        authenticate(refresh=True)
        return f(*args, **kwargs)

    return decorated_function


def current_user():
    return g.user


def current_user_id():
    return g.user['id']
