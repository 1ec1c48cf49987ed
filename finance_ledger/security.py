"""
Credential handling: salted scrypt password hashes and signed session tokens.
"""

import hashlib
import hmac
import secrets
from datetime import datetime, timezone, timedelta
from typing import Any, Dict, Tuple

import jwt

from .errors import InvalidCredentials


class PasswordHasher:
    """Salted scrypt hashing; cost is the scrypt N parameter (a power of two)"""

    def __init__(self, cost: int = 16384):
        if cost < 2 or cost & (cost - 1):
            raise ValueError("scrypt cost must be a power of two greater than 1")
        self.cost = cost

    @staticmethod
    def generate_salt() -> str:
        return secrets.token_hex(16)

    def hash(self, password: str, salt: str) -> str:
        return hashlib.scrypt(
            password.encode(),
            salt=salt.encode(),
            n=self.cost, r=8, p=1,
            maxmem=256 * self.cost * 8 + 1024 * 1024
        ).hex()

    def hash_new(self, password: str) -> Tuple[str, str]:
        """Hash with a fresh salt, returning (hash, salt)"""
        salt = self.generate_salt()
        return self.hash(password, salt), salt

    def verify(self, password: str, password_hash: str, salt: str) -> bool:
        if not password_hash or not salt:
            return False
        return hmac.compare_digest(self.hash(password, salt), password_hash)


class TokenService:
    """
    Issues and verifies HS256 JWT session tokens.

    Tokens are self-contained: verification needs only the shared secret.
    """

    def __init__(self, secret: str, algorithm: str = "HS256", expiry_minutes: int = 60):
        self.secret = secret
        self.algorithm = algorithm
        self.expiry = timedelta(minutes=expiry_minutes)

    def issue(self, email: str, role: str = "user") -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": email,
            "role": role,
            "iat": now,
            "exp": now + self.expiry
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Dict[str, Any]:
        """Decode a token, raising InvalidCredentials when it is expired or forged"""
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise InvalidCredentials("Token expired")
        except jwt.InvalidTokenError:
            raise InvalidCredentials("Invalid token")

        if not payload.get("sub"):
            raise InvalidCredentials("Invalid token")
        return payload
