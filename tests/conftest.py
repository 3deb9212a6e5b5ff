"""Pytest configuration and shared fixtures."""
import os

# Keep the app module from creating a database file in the working directory
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from genset_tracker.database import Base
from genset_tracker.models.domain import Venue, User, Generator, VenueAttachment
from genset_tracker.models.audit import LogEntry
from genset_tracker.models.enums import CapacityUnit, UserRole
from genset_tracker.services.inventory import InventoryService


@pytest.fixture
def engine():
    """Fresh in-memory database shared across threads for one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    TestingSessionLocal = sessionmaker(bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()


@pytest.fixture
def admin_user(db_session):
    user = User(
        username="admin",
        email="admin@example.com",
        password="not-a-real-hash",
        role=UserRole.ADMIN
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def venue(db_session, admin_user):
    """An active venue."""
    venue = Venue(name="Main Stage", location="North field", created_by_id=admin_user.id)
    db_session.add(venue)
    db_session.commit()
    db_session.refresh(venue)
    return venue


@pytest.fixture
def other_venue(db_session, admin_user):
    venue = Venue(name="Food Court", location="South field", created_by_id=admin_user.id)
    db_session.add(venue)
    db_session.commit()
    db_session.refresh(venue)
    return venue


@pytest.fixture
def operator(db_session, venue):
    """A role=user account assigned to `venue`."""
    user = User(
        username="operator",
        email="operator@example.com",
        password="not-a-real-hash",
        role=UserRole.USER,
        assigned_venue_id=venue.id
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def unassigned_user(db_session):
    user = User(
        username="drifter",
        email="drifter@example.com",
        password="not-a-real-hash",
        role=UserRole.USER
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def make_generator(db_session, admin_user):
    """Create generators through the inventory service, as an admin would."""
    inventory = InventoryService(db_session)

    def _make(name="Genset", venue=None, capacity=250, capacity_unit=CapacityUnit.KW):
        return inventory.create_generator(
            admin_user,
            name=name,
            capacity=capacity,
            capacity_unit=capacity_unit,
            venue_id=venue.id if venue is not None else None
        )

    return _make
