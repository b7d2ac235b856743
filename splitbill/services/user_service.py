import logging
import sqlite3

import bcrypt

from splitbill.errors import Conflict, ValidationFailed

logger = logging.getLogger(__name__)


def map_row_to_user(row):
    """Convert database row to user dict"""
    if not row:
        return None
    return {
        'id': row['id'],
        'name': row['name'],
        'phone_number': row['phone_number'],
        'created_at': row['created_at'],
        'updated_at': row['updated_at']
    }


def user_summary(user):
    """Short form embedded in groups, bills and balances"""
    if not user:
        return None
    return {'id': user['id'], 'name': user['name'], 'phone_number': user['phone_number']}


class UserService:
    """Service for managing users with SQLite persistence"""

    def __init__(self, db):
        self.db = db

    def create_user(self, name, phone_number, password):
        """Create a new user with hashed password"""
        if self.get_user_by_phone(phone_number):
            raise ValidationFailed(
                'Registration validation failed',
                {'phone_number': ['The phone number has already been taken.']}
            )

        password_hash = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')

        try:
            with self.db.transaction() as conn:
                cursor = conn.execute(
                    'INSERT INTO users (name, phone_number, password_hash) VALUES (?, ?, ?)',
                    (name, phone_number, password_hash)
                )
                user_id = cursor.lastrowid
        except sqlite3.IntegrityError:
            raise Conflict('The phone number has already been taken.')

        logger.info(f"User {user_id} registered")
        return self.get_user(user_id)

    def get_user(self, user_id):
        """Get user by ID"""
        row = self.db.fetch_one('SELECT * FROM users WHERE id = ?', (user_id,))
        return map_row_to_user(row)

    def get_user_by_phone(self, phone_number):
        row = self.db.fetch_one('SELECT * FROM users WHERE phone_number = ?', (phone_number,))
        return map_row_to_user(row)

    def get_users(self, user_ids):
        """Get users keyed by id; unknown ids are simply absent"""
        user_ids = list(user_ids)
        if not user_ids:
            return {}
        placeholders = ', '.join('?' * len(user_ids))
        rows = self.db.fetch_all(f'SELECT * FROM users WHERE id IN ({placeholders})', user_ids)
        return {row['id']: map_row_to_user(row) for row in rows}

    def missing_users(self, user_ids):
        """Return the ids that have no user row"""
        found = self.get_users(user_ids)
        return [uid for uid in user_ids if uid not in found]

    def verify_password(self, phone_number, password):
        """Verify user password and return user if valid"""
        row = self.db.fetch_one('SELECT * FROM users WHERE phone_number = ?', (phone_number,))
        if not row:
            return None

        password_hash = row['password_hash']
        if bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8')):
            return map_row_to_user(row)

        return None
