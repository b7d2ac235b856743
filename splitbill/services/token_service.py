import logging
import time
import uuid

import jwt

from splitbill.errors import Unauthenticated

logger = logging.getLogger(__name__)


class TokenService:
    """Issues, decodes and revokes JWT access/refresh tokens"""

    def __init__(self, db, secret, algorithm='HS256', ttl_minutes=60, refresh_ttl_minutes=20160):
        self.db = db
        self.secret = secret
        self.algorithm = algorithm
        self.ttl = ttl_minutes * 60
        self.refresh_ttl = refresh_ttl_minutes * 60

    def _encode(self, user, lifetime, refresh=False):
        now = int(time.time())
        payload = {
            'sub': str(user['id']),
            'jti': uuid.uuid4().hex,
            'iat': now,
            'exp': now + lifetime
        }
        if refresh:
            payload['rt'] = True
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def issue_tokens(self, user):
        """Generate an access/refresh token pair for user"""
        return {
            'access_token': self._encode(user, self.ttl),
            'refresh_token': self._encode(user, self.refresh_ttl, refresh=True),
            'token_type': 'bearer',
            'access_token_expires_in': self.ttl,
            'refresh_token_expires_in': self.refresh_ttl
        }

    def decode(self, token):
        """Decode and verify token, raising Unauthenticated on any problem"""
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={'require': ['sub', 'jti', 'exp']}
            )
        except jwt.ExpiredSignatureError:
            raise Unauthenticated('Token has expired')
        except jwt.InvalidTokenError:
            raise Unauthenticated('Invalid or expired token')

        if self.is_revoked(payload['jti']):
            raise Unauthenticated('Token has been revoked')
        return payload

    def revoke(self, payload):
        with self.db.transaction() as conn:
            conn.execute(
                'INSERT OR IGNORE INTO revoked_tokens (jti, expires_at) VALUES (?, ?)',
                (payload['jti'], payload['exp'])
            )
            # Expired entries can never be presented again
            conn.execute('DELETE FROM revoked_tokens WHERE expires_at < ?', (int(time.time()),))
        logger.info(f"Token {payload['jti']} revoked for user {payload['sub']}")

    def is_revoked(self, jti):
        row = self.db.fetch_one('SELECT 1 FROM revoked_tokens WHERE jti = ?', (jti,))
        return row is not None
