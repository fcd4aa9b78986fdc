import logging
from typing import Tuple
from sqlalchemy.future import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from ..models import User
from ..errors import AuthError, ConflictError, ValidationError
from .security import TokenIssuer, hash_password, verify_password

logger = logging.getLogger(__name__)


def _clean_credentials(email, password) -> Tuple[str, str]:
    if not email or not password or not isinstance(email, str) or not isinstance(password, str):
        raise ValidationError("email and password are required")
    email = email.strip().lower()
    if not email:
        raise ValidationError("email and password are required")
    return email, password


async def get_user_by_email(db: AsyncSession, email: str):
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def register(db: AsyncSession, issuer: TokenIssuer, email, password):
    """
    Create a user and return (user, token).
    Raises ConflictError when the email is already registered.
    """
    email, password = _clean_credentials(email, password)

    if await get_user_by_email(db, email):
        raise ConflictError("Email already registered")

    user = User(email=email, password_hash=hash_password(password))
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        # lost a race with a concurrent registration for the same email
        await db.rollback()
        raise ConflictError("Email already registered")

    logger.info("Registered user %s", user.id)
    return user, issuer.issue(user.id, user.email)


async def login(db: AsyncSession, issuer: TokenIssuer, email, password):
    email, password = _clean_credentials(email, password)

    user = await get_user_by_email(db, email)
    if not user or not verify_password(password, user.password_hash):
        raise AuthError("Invalid credentials")

    return user, issuer.issue(user.id, user.email)
