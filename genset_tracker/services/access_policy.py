"""
Role-scoped visibility and mutation rules.

Admins see and operate everything. A user with role=user is confined to the
generators and log entries of their assigned venue; without one they see nothing.
"""
from typing import List, Optional
from sqlalchemy.orm import Session
from genset_tracker.models.domain import Generator, User
from genset_tracker.services.errors import ForbiddenError


def is_admin(user: User) -> bool:
    return user is not None and user.is_admin


def require_admin(user: User, action: str = "perform this action") -> None:
    """Raise ForbiddenError unless user is an admin."""
    if not is_admin(user):
        raise ForbiddenError(f"Access denied. Only administrators can {action}.")


def scope_filter(user: User, base_filter: Optional[dict] = None, require_venue: bool = True) -> Optional[dict]:
    """
    Intersect base_filter with the user's venue scope.

    Returns the filter to apply, or None when nothing is visible to the user.
    Admins get base_filter back unchanged.

    Raises ForbiddenError for a non-admin without an assigned venue when
    require_venue is set.
    """
    scoped = dict(base_filter or {})
    if is_admin(user):
        return scoped

    if user.assigned_venue_id is None:
        if require_venue:
            raise ForbiddenError("No venue assigned to user")
        return None

    requested_venue = scoped.get("venue_id")
    if requested_venue is not None and requested_venue != user.assigned_venue_id:
        # Asked for another venue: the intersection is empty
        return None

    scoped["venue_id"] = user.assigned_venue_id
    return scoped


def can_mutate_generator(user: User, generator: Generator) -> bool:
    """Admins always; users only for generators at their assigned venue."""
    if is_admin(user):
        return True
    if user.assigned_venue_id is None or generator.venue_id is None:
        return False
    return generator.venue_id == user.assigned_venue_id


def visible_generators(db: Session, user: User) -> List[Generator]:
    """Active generators in the user's scope, ordered by name."""
    scope = scope_filter(user)

    query = db.query(Generator).filter(Generator.is_active.is_(True))
    if "venue_id" in scope:
        query = query.filter(Generator.venue_id == scope["venue_id"])
    return query.order_by(Generator.name).all()
