"""
Audit log model - one row per state-affecting action.

Rows are written by AuditLogger only. Admins may edit or hard-delete
entries to correct manual mistakes; nothing else removes them.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from genset_tracker.database import Base
from genset_tracker.models.enums import LogAction, GeneratorStatus


class LogEntry(Base):
    """
    Audit entry linking an action to a generator, a venue and the acting user.

    Invariants:
    - genset_id is NULL only for VENUE_DELETED summaries
    - venue_id is NULL only when the generator had no venue at the time
    - notes are at most 500 characters
    """
    __tablename__ = "log_entries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    genset_id = Column(Integer, ForeignKey("generators.id"), nullable=True, index=True)
    venue_id = Column(Integer, ForeignKey("venues.id"), nullable=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    action = Column(SQLEnum(LogAction), nullable=False, index=True)
    previous_status = Column(SQLEnum(GeneratorStatus), nullable=True)
    new_status = Column(SQLEnum(GeneratorStatus), nullable=True)
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    notes = Column(String(500), nullable=True)
    affected_generators = Column(Integer, nullable=True)  # VENUE_DELETED summaries only

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    genset = relationship("Generator")
    venue = relationship("Venue")
    user = relationship("User")
