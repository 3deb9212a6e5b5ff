"""
Admin inventory management: venues, generators and users.

Every operation here is admin-only. Venue assignment goes through
VenueAttachmentTracker and every generator change is written to the audit log.
"""
import logging
from typing import List, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from genset_tracker.models.domain import Generator, User, Venue
from genset_tracker.models.enums import (
    CapacityUnit,
    DetachReason,
    FuelType,
    GeneratorStatus,
    LogAction,
    UserRole
)
from genset_tracker.services import access_policy
from genset_tracker.services.audit_logger import AuditLogger
from genset_tracker.services.errors import ConflictError, NotFoundError, ValidationError
from genset_tracker.services.identity import hash_password
from genset_tracker.services.venue_tracker import CascadeResult, VenueAttachmentTracker

logger = logging.getLogger("gensets.inventory")

# Marks "argument not given" where None is a meaningful value (clear the venue)
UNSET = object()


class InventoryService:
    """Admin CRUD over the entity store."""

    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditLogger(db)
        self.tracker = VenueAttachmentTracker(db, self.audit)

    # Venues

    def list_venues(self, acting_user: User) -> List[Venue]:
        access_policy.require_admin(acting_user, "manage venues")
        return self.db.query(Venue).filter(Venue.is_active.is_(True)).order_by(Venue.created_at.desc()).all()

    def create_venue(
        self,
        acting_user: User,
        name: str,
        location: Optional[str] = None,
        description: Optional[str] = None,
        contact_person: Optional[str] = None
    ) -> Venue:
        access_policy.require_admin(acting_user, "manage venues")
        name = self._required(name, "Name")
        self._check_venue_name(name)

        venue = Venue(
            name=name,
            location=location,
            description=description,
            contact_person=contact_person,
            created_by_id=acting_user.id
        )
        self.db.add(venue)
        self._commit("Venue name already exists")
        self.db.refresh(venue)
        logger.info("Venue %s (%s) created by %s", venue.id, venue.name, acting_user.username)
        return venue

    def update_venue(self, acting_user: User, venue_id: int, **fields) -> Venue:
        access_policy.require_admin(acting_user, "manage venues")
        venue = self._active_venue(venue_id)

        if "name" in fields:
            name = self._required(fields.pop("name"), "Name")
            if name != venue.name:
                self._check_venue_name(name)
            venue.name = name
        for key in ("location", "description", "contact_person"):
            if key in fields:
                setattr(venue, key, fields.pop(key))
        if fields:
            raise ValidationError(f"Unknown venue fields: {', '.join(sorted(fields))}")

        self._commit("Venue name already exists")
        self.db.refresh(venue)
        return venue

    def delete_venue(self, acting_user: User, venue_id: int) -> CascadeResult:
        """
        Soft-delete a venue and untag its generators.

        The venue is deactivated first so no generator can be energized there
        while the cascade runs.
        """
        access_policy.require_admin(acting_user, "manage venues")
        venue = self._active_venue(venue_id)

        venue.is_active = False
        self.db.commit()
        logger.info("Venue %s (%s) deactivated by %s", venue.id, venue.name, acting_user.username)

        return self.tracker.detach_all(venue_id, acting_user, DetachReason.VENUE_DELETED)

    # Generators

    def list_generators(self, acting_user: User) -> List[Generator]:
        access_policy.require_admin(acting_user, "manage generators")
        return (
            self.db.query(Generator)
            .filter(Generator.is_active.is_(True))
            .order_by(Generator.created_at.desc())
            .all()
        )

    def create_generator(
        self,
        acting_user: User,
        name: str,
        capacity: float,
        capacity_unit: CapacityUnit = CapacityUnit.KW,
        model: Optional[str] = None,
        fuel_type: Optional[FuelType] = None,
        venue_id: Optional[int] = None
    ) -> Generator:
        """New generator, always OFF; history seeded when venue_id is given."""
        access_policy.require_admin(acting_user, "manage generators")

        generator = Generator(
            name=self._required(name, "Name"),
            model=model,
            capacity=self._capacity(capacity),
            capacity_unit=capacity_unit or CapacityUnit.KW,
            fuel_type=fuel_type,
            status=GeneratorStatus.OFF,
            created_by_id=acting_user.id,
            last_status_changed_by_id=acting_user.id
        )
        if venue_id is not None:
            self.tracker.attach(generator, venue_id)

        self.db.add(generator)
        self.db.flush()
        self.audit.record(
            action=LogAction.CREATED,
            user=acting_user,
            genset=generator,
            new_status=GeneratorStatus.OFF,
            notes="Generator created",
            commit=False
        )
        self.db.commit()
        self.db.refresh(generator)
        logger.info("Generator %s (%s) created by %s", generator.id, generator.name, acting_user.username)
        return generator

    def update_generator(self, acting_user: User, generator_id: int, venue_id=UNSET, **fields) -> Generator:
        """
        Edit generator fields and, when venue_id is passed, its venue.

        venue_id=None detaches the generator; a different id reassigns it.
        Status is never changed here.
        """
        access_policy.require_admin(acting_user, "manage generators")
        generator = self._active_generator(generator_id)

        if "name" in fields:
            generator.name = self._required(fields.pop("name"), "Name")
        if "capacity" in fields:
            generator.capacity = self._capacity(fields.pop("capacity"))
        if "capacity_unit" in fields:
            generator.capacity_unit = fields.pop("capacity_unit") or CapacityUnit.KW
        for key in ("model", "fuel_type"):
            if key in fields:
                setattr(generator, key, fields.pop(key))
        if fields:
            raise ValidationError(f"Unknown generator fields: {', '.join(sorted(fields))}")

        if venue_id is None:
            self.tracker.detach(generator, DetachReason.MANUAL_REASSIGNMENT)
        elif venue_id is not UNSET:
            self.tracker.attach(generator, venue_id, DetachReason.MANUAL_REASSIGNMENT)

        self.db.flush()
        self.audit.record(
            action=LogAction.UPDATED,
            user=acting_user,
            genset=generator,
            new_status=generator.status,
            notes="Generator updated",
            commit=False
        )
        self.db.commit()
        self.db.refresh(generator)
        return generator

    def delete_generator(self, acting_user: User, generator_id: int) -> Generator:
        """Soft delete; the row and its history stay for reporting."""
        access_policy.require_admin(acting_user, "manage generators")
        generator = self._active_generator(generator_id)

        generator.is_active = False
        self.audit.record(
            action=LogAction.DELETED,
            user=acting_user,
            genset=generator,
            previous_status=generator.status,
            new_status=generator.status,
            notes="Generator deleted",
            commit=False
        )
        self.db.commit()
        self.db.refresh(generator)
        logger.info("Generator %s deleted by %s", generator.id, acting_user.username)
        return generator

    # Users

    def list_users(self, acting_user: User) -> List[User]:
        access_policy.require_admin(acting_user, "manage users")
        return self.db.query(User).filter(User.is_active.is_(True)).order_by(User.created_at.desc()).all()

    def create_user(
        self,
        acting_user: User,
        username: str,
        email: str,
        password: str,
        role: UserRole = UserRole.USER,
        assigned_venue_id: Optional[int] = None
    ) -> User:
        access_policy.require_admin(acting_user, "manage users")
        username = self._required(username, "Username")
        email = self._required(email, "Email")
        self._required(password, "Password")
        self._check_user_unique(username, email)
        if assigned_venue_id is not None:
            self._active_venue(assigned_venue_id)

        user = User(
            username=username,
            email=email,
            password=hash_password(password),
            role=role or UserRole.USER,
            assigned_venue_id=assigned_venue_id
        )
        self.db.add(user)
        self._commit("Username or email already exists")
        self.db.refresh(user)
        logger.info("User %s (%s) created by %s", user.id, user.username, acting_user.username)
        return user

    def update_user(self, acting_user: User, user_id: int, **fields) -> User:
        access_policy.require_admin(acting_user, "manage users")
        user = self.db.query(User).filter(User.id == user_id, User.is_active.is_(True)).first()
        if user is None:
            raise NotFoundError("User not found")

        username = self._required(fields.pop("username", user.username), "Username")
        email = self._required(fields.pop("email", user.email), "Email")
        self._check_user_unique(username, email, exclude_id=user.id)
        user.username = username
        user.email = email

        if "role" in fields:
            user.role = fields.pop("role") or UserRole.USER
        if "assigned_venue_id" in fields:
            venue_id = fields.pop("assigned_venue_id")
            if venue_id is not None:
                self._active_venue(venue_id)
            user.assigned_venue_id = venue_id
        password = fields.pop("password", None)
        if password:
            user.password = hash_password(password)
        if fields:
            raise ValidationError(f"Unknown user fields: {', '.join(sorted(fields))}")

        self._commit("Username or email already exists")
        self.db.refresh(user)
        return user

    def delete_user(self, acting_user: User, user_id: int) -> User:
        access_policy.require_admin(acting_user, "manage users")
        if user_id == acting_user.id:
            raise ValidationError("Administrators cannot delete their own account")
        user = self.db.query(User).filter(User.id == user_id, User.is_active.is_(True)).first()
        if user is None:
            raise NotFoundError("User not found")

        user.is_active = False
        self.db.commit()
        self.db.refresh(user)
        logger.info("User %s deactivated by %s", user.id, acting_user.username)
        return user

    # Helpers

    def _active_venue(self, venue_id: int) -> Venue:
        venue = self.db.query(Venue).filter(Venue.id == venue_id, Venue.is_active.is_(True)).first()
        if venue is None:
            raise NotFoundError("Venue not found")
        return venue

    def _active_generator(self, generator_id: int) -> Generator:
        generator = self.db.query(Generator).filter(
            Generator.id == generator_id,
            Generator.is_active.is_(True)
        ).first()
        if generator is None:
            raise NotFoundError("Generator not found")
        return generator

    def _check_venue_name(self, name: str) -> None:
        if self.db.query(Venue.id).filter(Venue.name == name).first() is not None:
            raise ConflictError("Venue name already exists")

    def _check_user_unique(self, username: str, email: str, exclude_id: Optional[int] = None) -> None:
        for column, value, label in ((User.username, username, "username"), (User.email, email, "email")):
            query = self.db.query(User.id).filter(column == value)
            if exclude_id is not None:
                query = query.filter(User.id != exclude_id)
            if query.first() is not None:
                raise ConflictError(f"{label} already exists")

    def _commit(self, conflict_message: str) -> None:
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(conflict_message)

    @staticmethod
    def _required(value: Optional[str], label: str) -> str:
        if value is None or not str(value).strip():
            raise ValidationError(f"{label} is required")
        return str(value).strip()

    @staticmethod
    def _capacity(value) -> float:
        try:
            capacity = float(value)
        except (TypeError, ValueError):
            raise ValidationError("Capacity must be a number")
        if capacity <= 0:
            raise ValidationError("Capacity must be positive")
        return capacity
