import logging
import os
import platform
import sqlite3

from flask import Blueprint, current_app

from splitbill.responses import success_response

logger = logging.getLogger(__name__)


def create_system_routes(db):
    bp = Blueprint('system_routes', __name__, url_prefix='/api/v1')

    @bp.get('/health')
    def health():
        try:
            db.ping()
            db_status = 'connected'
        except sqlite3.Error as err:
            logger.warning(f"Health check could not reach the database: {err}")
            db_status = 'disconnected'

        cpu_load = os.getloadavg()[0] if hasattr(os, 'getloadavg') else None

        return success_response({
            'app': {
                'name': current_app.config['APP_NAME'],
                'env': current_app.config['APP_ENV'],
                'debug': current_app.config['DEBUG']
            },
            'database': {
                'status': db_status,
                'driver': 'sqlite' if db_status == 'connected' else None
            },
            'server': {
                'python_version': platform.python_version(),
                'cpu_load': cpu_load
            }
        }, 'System health check successful')

    return bp
