from flask import Blueprint, g, request

from splitbill.errors import Unauthenticated
from splitbill.middleware.auth import auth_required, current_user, refresh_token_required
from splitbill.responses import created_response, success_response
from splitbill.services.user_service import user_summary
from splitbill.validators import validate_login, validate_registration


def create_auth_routes(user_service, token_service):
    bp = Blueprint('auth_routes', __name__, url_prefix='/api/v1/auth')

    def with_tokens(user):
        return {**user_summary(user), 'tokens': token_service.issue_tokens(user)}

    @bp.post('/register')
    def register():
        data = validate_registration(request.get_json(silent=True) or {})
        user = user_service.create_user(data['name'], data['phone_number'], data['password'])
        return created_response(with_tokens(user), 'User registered successfully')

    @bp.post('/login')
    def login():
        data = validate_login(request.get_json(silent=True) or {})
        user = user_service.verify_password(data['phone_number'], data['password'])
        if not user:
            raise Unauthenticated('Invalid phone number or password')
        return success_response(with_tokens(user), 'Login successful')

    @bp.post('/logout')
    @auth_required
    def logout():
        token_service.revoke(g.token_payload)
        return success_response(None, 'Successfully logged out')

    @bp.post('/refresh')
    @refresh_token_required
    def refresh():
        token_service.revoke(g.token_payload)
        return success_response(with_tokens(current_user()), 'Tokens refreshed successfully')

    @bp.get('/me')
    @auth_required
    def me():
        return success_response(current_user(), 'User retrieved successfully')

    return bp
