import jwt
import base64
import bcrypt
import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict
from ..errors import ForbiddenError

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


def _bcrypt_input(password: str) -> bytes:
    # bcrypt only reads 72 bytes; a base64 SHA-256 digest is 44 and NUL-free
    return base64.b64encode(hashlib.sha256(password.encode("utf-8")).digest())


def hash_password(password: str) -> str:
    # bcrypt salts every hash on its own
    return bcrypt.hashpw(_bcrypt_input(password), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(_bcrypt_input(password), hashed_password.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False


class TokenIssuer:
    """
    Issues and verifies signed identity tokens.

    Tokens carry the user id and email and expire `expires_hours`
    after issuance.
    """

    def __init__(self, secret: str, expires_hours: int = 24):
        self.secret = secret
        self.expires = timedelta(hours=expires_hours)

    def issue(self, user_id: int, email: str, now: datetime = None) -> str:
        now = now or datetime.now(timezone.utc)
        payload = {
            "userId": user_id,
            "email": email,
            "iat": now,
            "exp": now + self.expires,
        }
        return jwt.encode(payload, self.secret, algorithm=JWT_ALGORITHM)

    def verify(self, token: str) -> Dict[str, Any]:
        """
        Returns the decoded claims.

        Raises:
            ForbiddenError: bad signature, malformed token or expired.
        """
        try:
            payload = jwt.decode(token, self.secret, algorithms=[JWT_ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise ForbiddenError("Token has expired")
        except jwt.InvalidTokenError as e:
            logger.debug("Rejected token: %s", e)
            raise ForbiddenError("Invalid or expired token")

        if "userId" not in payload:
            raise ForbiddenError("Invalid or expired token")
        return payload
