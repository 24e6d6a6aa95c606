"""API token authentication. Tokens are shown once and stored as SHA-256 hashes."""

import hashlib
import logging
import re
import secrets
from typing import Optional, Tuple

from shared.constants import MAX_NAME_LENGTH
from shared.database import DatabaseManager
from shared.errors import AuthenticationRequired, ValidationError
from shared.models import User, generate_id

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def register_user(db: DatabaseManager, name: str, email: str, image: Optional[str] = None) -> Tuple[User, str]:
    """
    Create a user and return it with its plaintext API token.

    Raises:
        ValidationError: bad name/email or email already registered
    """
    name = (name or "").strip()
    email = (email or "").strip().lower()
    errors = {}
    if not name or len(name) > MAX_NAME_LENGTH:
        errors["name"] = f"Name must be 1-{MAX_NAME_LENGTH} characters"
    if not _EMAIL_RE.match(email):
        errors["email"] = "Invalid email address"
    elif db.get_user_by_email(email):
        errors["email"] = "Email is already registered"
    if errors:
        raise ValidationError("Validation error", errors)

    token = secrets.token_urlsafe(32)
    user = User(id=generate_id(), name=name, email=email, image=image, token_hash=hash_token(token))
    db.insert_user(user)
    logger.info(f"Registered user {user.id}")
    return user, token


def parse_bearer(header: Optional[str]) -> Optional[str]:
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def resolve_user(db: DatabaseManager, authorization: Optional[str]) -> Optional[User]:
    """User for an `Authorization: Bearer <token>` header, or None."""
    token = parse_bearer(authorization)
    if not token:
        return None
    return db.get_user_by_token_hash(hash_token(token))


def require_user(db: DatabaseManager, authorization: Optional[str]) -> User:
    user = resolve_user(db, authorization)
    if user is None:
        raise AuthenticationRequired("Authentication required")
    return user
