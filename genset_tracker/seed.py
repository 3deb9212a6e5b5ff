"""
Bootstrap the first administrator.

Every user-management route needs an existing admin, so a fresh database
gets its first one from here:

    genset-seed-admin --password '...'
    genset-seed-admin --reset --password '...'   # rewrite the admin's password

Safe to run repeatedly: an existing admin is left alone unless --reset.
"""
import argparse
import logging
import sys
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from genset_tracker.config import settings
from genset_tracker.database import Base, SessionLocal, engine
# Import models to register them with SQLAlchemy Base
from genset_tracker.models.audit import LogEntry
from genset_tracker.models.domain import User
from genset_tracker.models.enums import UserRole
from genset_tracker.services.errors import ConflictError, GensetError, ValidationError
from genset_tracker.services.identity import MIN_PASSWORD_LENGTH, hash_password

logger = logging.getLogger("gensets.seed")


def seed_admin(
    db: Session,
    username: str,
    email: str,
    password: str,
    reset: bool = False
) -> Tuple[User, bool]:
    """
    Create the admin account, or repair it when reset is set.

    Returns (user, changed). A reset also reactivates the account and
    restores the admin role.
    """
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Admin password must be at least {MIN_PASSWORD_LENGTH} characters long")

    user = db.query(User).filter(User.username == username).first()
    if user is not None and not reset:
        logger.info("Admin user %s already exists", username)
        return user, False

    email_owner = db.query(User).filter(User.email == email).first()
    if email_owner is not None and email_owner is not user:
        raise ConflictError(f"Email {email} already belongs to {email_owner.username}")

    if user is None:
        user = User(username=username, email=email, password=hash_password(password), role=UserRole.ADMIN)
        db.add(user)
        logger.info("Admin user %s created", username)
    else:
        user.email = email
        user.password = hash_password(password)
        user.role = UserRole.ADMIN
        user.is_active = True
        logger.info("Admin user %s reset", username)

    db.commit()
    db.refresh(user)
    return user, True


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Create or reset the genset tracker administrator.")
    parser.add_argument("--username", default=settings.ADMIN_USERNAME)
    parser.add_argument("--email", default=settings.ADMIN_EMAIL)
    parser.add_argument("--password", default=settings.ADMIN_PASSWORD or None,
                        help="Defaults to ADMIN_PASSWORD")
    parser.add_argument("--reset", action="store_true", help="Overwrite an existing admin's password")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    if not args.password:
        parser.error("--password or ADMIN_PASSWORD is required")

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_admin(db, args.username, args.email, args.password, reset=args.reset)
    except GensetError as e:
        logger.error("Admin seed failed: %s", e.message)
        return 1
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
