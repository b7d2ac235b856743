import logging
import os

from flask import Flask, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException, MethodNotAllowed, NotFound

from splitbill.config import Config
from splitbill.db import Database
from splitbill.errors import ApiError
from splitbill.responses import error_response
from splitbill.services.user_service import UserService
from splitbill.services.token_service import TokenService
from splitbill.services.group_service import GroupService
from splitbill.services.bill_service import BillService
from splitbill.services.balance_service import BalanceService
from splitbill.routes.auth_routes import create_auth_routes
from splitbill.routes.group_routes import create_group_routes
from splitbill.routes.bill_routes import create_bill_routes
from splitbill.routes.system_routes import create_system_routes

logger = logging.getLogger(__name__)


def configure_logging(level):
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def handle_api_error(err):
        return error_response(err.message, err.status_code, err.errors)

    @app.errorhandler(HTTPException)
    def handle_http_error(err):
        if isinstance(err, NotFound):
            return error_response('Endpoint not found. The requested API route does not exist.', 404)
        if isinstance(err, MethodNotAllowed):
            allowed = ', '.join(sorted(err.valid_methods or [])) or 'Unknown'
            return error_response(
                f"Method {request.method} is not allowed for this route. "
                f"Allowed methods: {allowed}",
                405
            )
        return error_response(err.description or err.name, err.code or 500)

    @app.errorhandler(Exception)
    def handle_unexpected_error(err):
        logger.exception('Unhandled error while processing request')
        message = str(err) if app.config.get('DEBUG') else 'Something went wrong!'
        return error_response(message, 500, exception=err)


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)
    app.url_map.strict_slashes = False

    configure_logging(app.config['LOG_LEVEL'])

    CORS(
        app,
        resources={r"/api/*": {"origins": app.config['CORS_ORIGINS']}},
        supports_credentials=True,
        allow_headers=["Content-Type", "Authorization"],
        expose_headers=["Content-Type", "Authorization"]
    )

    # Initialize database schema
    db = Database(app.config['DATABASE_PATH'])
    db.init_schema()

    # Instantiate services
    user_service = UserService(db)
    token_service = TokenService(
        db,
        app.config['JWT_SECRET'],
        algorithm=app.config['JWT_ALGORITHM'],
        ttl_minutes=app.config['JWT_TTL'],
        refresh_ttl_minutes=app.config['JWT_REFRESH_TTL']
    )
    group_service = GroupService(db, user_service)
    bill_service = BillService(db, group_service, user_service)
    balance_service = BalanceService(group_service, bill_service)

    app.extensions['splitbill'] = {
        'db': db,
        'user_service': user_service,
        'token_service': token_service,
        'group_service': group_service,
        'bill_service': bill_service,
        'balance_service': balance_service
    }

    # Register blueprints
    app.register_blueprint(create_system_routes(db))
    app.register_blueprint(create_auth_routes(user_service, token_service))
    app.register_blueprint(create_group_routes(group_service))
    app.register_blueprint(create_bill_routes(bill_service, balance_service))

    register_error_handlers(app)
    return app


if __name__ == '__main__':
    port = int(os.getenv('PORT', 3000))
    create_app().run(host='0.0.0.0', port=port)
