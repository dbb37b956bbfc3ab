# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every sale and refund must be attributable to a partner. Uses bcrypt
for password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, at least one letter and one digit
- Session tokens managed separately (see session_service.py)
"""

import logging
import re

import bcrypt

from ..extensions import db
from ..models import User
from ..time_utils import utcnow

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = 12


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class UserExistsError(ValueError):
    """Raised when a username is already taken."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() compares in constant time. A malformed stored hash
    counts as a mismatch.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


def create_user(username: str, password: str) -> User:
    """
    Create a login user.

    Raises:
        UserExistsError: username taken
        PasswordValidationError: weak password
    """
    username = (username or "").strip()
    if not username:
        raise ValueError("username cannot be blank")

    existing = db.session.query(User).filter_by(username=username).first()
    if existing:
        raise UserExistsError(f"User {username!r} already exists")

    user = User(username=username, password_hash=hash_password(password))
    db.session.add(user)
    db.session.commit()
    logger.info("Created user #%d (%s)", user.id, user.username)
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Check credentials.

    Returns the User and stamps last_login_at on success, None otherwise.
    Inactive users cannot log in.
    """
    user = db.session.query(User).filter(
        User.username == (username or "").strip(),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None
