import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    APP_NAME = os.environ.get('APP_NAME', 'SplitBill')
    APP_ENV = os.environ.get('APP_ENV', 'production')
    DEBUG = _env_bool('DEBUG', False)

    # Token settings (TTL values are in minutes)
    JWT_SECRET = os.environ.get('JWT_SECRET', 'dev-secret')
    JWT_ALGORITHM = 'HS256'
    JWT_TTL = int(os.environ.get('JWT_TTL', 60))
    JWT_REFRESH_TTL = int(os.environ.get('JWT_REFRESH_TTL', 20160))

    DATABASE_PATH = os.environ.get('DATABASE_PATH', 'splitbill.db')

    CORS_ORIGINS = [
        origin.strip()
        for origin in os.environ.get('CORS_ORIGINS', 'http://localhost:3000').split(',')
        if origin.strip()
    ]

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
