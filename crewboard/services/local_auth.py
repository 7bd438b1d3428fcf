"""
Email and password sign-in using bcrypt.
"""

import logging

import bcrypt
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from crewboard.errors import AlreadyRegisteredError, InvalidCredentials, WeakPasswordError
from crewboard.models.account import Account
from crewboard.settings import settings

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    # bcrypt has a 72-byte limit, truncate if needed
    password_bytes = password.encode("utf-8")[:72]
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password_bytes, salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash."""
    password_bytes = plain_password.encode("utf-8")[:72]
    hashed_bytes = hashed_password.encode("utf-8")
    return bcrypt.checkpw(password_bytes, hashed_bytes)


def validate_password(password: str, min_length: int | None = None) -> tuple[bool, str | None]:
    """Validate password strength.

    Returns (is_valid, error_message).
    """
    min_length = min_length or settings.password_min_length
    if len(password) < min_length:
        return False, f"Password must be at least {min_length} characters"

    return True, None


async def register(db: AsyncSession, email: str, password: str, display_name: str) -> Account:
    email = email.lower().strip()

    is_valid, error = validate_password(password)
    if not is_valid:
        raise WeakPasswordError(error)

    existing = await db.execute(select(Account.id).where(func.lower(Account.email) == email))
    if existing.first():
        raise AlreadyRegisteredError()

    account = Account(
        email=email,
        display_name=display_name.strip() or email.split("@")[0],
        hashed_password=hash_password(password),
    )
    db.add(account)
    try:
        await db.flush()
    except IntegrityError as e:
        raise AlreadyRegisteredError() from e

    logger.info(f"Registered account {account.id}")
    return account


async def authenticate(db: AsyncSession, email: str, password: str) -> Account:
    result = await db.execute(select(Account).where(func.lower(Account.email) == email.lower().strip()))
    account = result.scalar_one_or_none()

    # Same error for unknown email, OAuth-only account and wrong password
    if not account or not account.hashed_password or not account.is_active:
        raise InvalidCredentials()
    if not verify_password(password, account.hashed_password):
        raise InvalidCredentials()

    return account
