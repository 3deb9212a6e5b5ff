"""
Identity: password hashing and bearer-token resolution.

The core only needs current_user(credential); everything else here exists
to issue those credentials.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

import bcrypt
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from genset_tracker.config import settings
from genset_tracker.models.domain import User
from genset_tracker.services.errors import ValidationError

logger = logging.getLogger("gensets.identity")

MIN_PASSWORD_LENGTH = 6


def hash_password(password: str) -> str:
    # Bcrypt has a 72-byte limit, truncate if necessary
    password_bytes = password.encode("utf-8")[:72]
    return bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=12)).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8")[:72], hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


class IdentityProvider(Protocol):
    """Resolves an opaque credential to an active User, or None."""

    def current_user(self, credential: Optional[str]) -> Optional[User]: ...


class TokenIdentityProvider:
    """Signed JWTs carrying the user id in the sub claim."""

    def __init__(
        self,
        db: Session,
        secret_key: str = settings.JWT_SECRET_KEY,
        algorithm: str = settings.JWT_ALGORITHM,
        expire_minutes: int = settings.ACCESS_TOKEN_EXPIRE_MINUTES
    ):
        self.db = db
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes

    def issue_token(self, user: User) -> str:
        expire = datetime.now(timezone.utc) + timedelta(minutes=self.expire_minutes)
        claims = {"sub": str(user.id), "role": user.role.value, "exp": expire}
        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)

    def current_user(self, credential: Optional[str]) -> Optional[User]:
        if not credential:
            return None
        try:
            payload = jwt.decode(credential, self.secret_key, algorithms=[self.algorithm])
            user_id = int(payload.get("sub"))
        except (JWTError, TypeError, ValueError):
            logger.debug("Rejected bearer token")
            return None

        return self.db.query(User).filter(User.id == user_id, User.is_active.is_(True)).first()

    def authenticate(self, username: str, password: str) -> Optional[User]:
        """Active user matching username and password, or None."""
        user = self.db.query(User).filter(User.username == username, User.is_active.is_(True)).first()
        if user is None or not verify_password(password, user.password):
            logger.info("Failed login for %s", username)
            return None
        return user

    def change_password(self, user: User, current_password: str, new_password: str) -> User:
        """Self-service password change; the current password must match."""
        if not current_password or not new_password:
            raise ValidationError("Current password and new password are required")
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"New password must be at least {MIN_PASSWORD_LENGTH} characters long")
        if not verify_password(current_password, user.password):
            raise ValidationError("Current password is incorrect")
        if verify_password(new_password, user.password):
            raise ValidationError("New password must be different from current password")

        user.password = hash_password(new_password)
        self.db.commit()
        self.db.refresh(user)
        logger.info("Password changed for %s", user.username)
        return user
