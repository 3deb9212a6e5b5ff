"""Domain models - venues, users, generators and their venue attachment history."""
from datetime import datetime
from sqlalchemy import Column, String, Integer, Float, Boolean, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from genset_tracker.database import Base
from genset_tracker.models.enums import (
    GeneratorStatus,
    CapacityUnit,
    FuelType,
    DetachReason,
    UserRole
)


class Venue(Base):
    """
    A physical site generators are assigned to.

    Invariants:
    - name is unique
    - Deletion is soft (is_active=False); the row is kept for history
    """
    __tablename__ = "venues"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True)
    location = Column(String(200), nullable=True)
    description = Column(String(500), nullable=True)
    contact_person = Column(String(100), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by_id = Column(Integer, ForeignKey("users.id", use_alter=True), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    generators = relationship("Generator", back_populates="venue", foreign_keys="Generator.venue_id")
    created_by = relationship("User", foreign_keys=[created_by_id])


class User(Base):
    """
    An operator (role=user) scoped to one venue, or an admin.

    The password column only ever holds a bcrypt hash.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    username = Column(String(50), nullable=False, unique=True)
    email = Column(String(255), nullable=False, unique=True)
    password = Column(String(255), nullable=False)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.USER)
    assigned_venue_id = Column(Integer, ForeignKey("venues.id"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    assigned_venue = relationship("Venue", foreign_keys=[assigned_venue_id])

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class Generator(Base):
    """
    A backup power unit ("genset").

    Invariants:
    - status becomes ON only while venue is set and venue.is_active (enforced in PowerStateMachine)
    - At most one open (detached_at is NULL) entry in venue_history
    - Deletion is soft (is_active=False)
    - version increments on every flush; stale writes raise StaleDataError
    """
    __tablename__ = "generators"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    model = Column(String(100), nullable=True)
    capacity = Column(Float, nullable=False)
    capacity_unit = Column(SQLEnum(CapacityUnit), nullable=False, default=CapacityUnit.KW)
    fuel_type = Column(SQLEnum(FuelType, values_callable=lambda e: [m.value for m in e]), nullable=True)
    status = Column(SQLEnum(GeneratorStatus), nullable=False, default=GeneratorStatus.OFF)
    venue_id = Column(Integer, ForeignKey("venues.id"), nullable=True, index=True)

    last_status_change = Column(DateTime, nullable=False, default=datetime.utcnow)
    last_status_changed_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version}

    venue = relationship("Venue", back_populates="generators", foreign_keys=[venue_id])
    last_status_changed_by = relationship("User", foreign_keys=[last_status_changed_by_id])
    created_by = relationship("User", foreign_keys=[created_by_id])
    venue_history = relationship(
        "VenueAttachment",
        back_populates="generator",
        order_by="VenueAttachment.id",
        cascade="all, delete-orphan"
    )

    @property
    def open_attachment(self):
        """The attachment interval that has not been closed yet, if any."""
        for attachment in self.venue_history:
            if attachment.detached_at is None:
                return attachment
        return None


class VenueAttachment(Base):
    """
    One interval during which a generator was attached to a venue.

    venue_name is a snapshot taken at attach time and survives venue rename or deletion.

    Invariants:
    - attached_at <= detached_at when closed
    - Rows are appended and closed, never removed
    """
    __tablename__ = "venue_attachments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    generator_id = Column(Integer, ForeignKey("generators.id"), nullable=False, index=True)
    venue_id = Column(Integer, ForeignKey("venues.id"), nullable=True)
    venue_name = Column(String(100), nullable=False)
    attached_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    detached_at = Column(DateTime, nullable=True)
    detached_reason = Column(SQLEnum(DetachReason), nullable=True)

    generator = relationship("Generator", back_populates="venue_history")
    venue = relationship("Venue")

    @property
    def is_open(self) -> bool:
        return self.detached_at is None
