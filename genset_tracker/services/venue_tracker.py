"""
Venue attachment tracker.

Keeps Generator.venue and Generator.venue_history in step. History rows are
appended and closed, never removed or reopened.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from genset_tracker.models.audit import LogEntry
from genset_tracker.models.domain import Generator, User, Venue, VenueAttachment
from genset_tracker.models.enums import DetachReason, LogAction
from genset_tracker.services import access_policy
from genset_tracker.services.audit_logger import AuditLogger
from genset_tracker.services.errors import ForbiddenError, GensetError, NotFoundError, ValidationError

logger = logging.getLogger("gensets.venues")


@dataclass
class CascadeResult:
    """Outcome of detaching every generator from a venue."""
    venue_id: int
    detached_ids: List[int] = field(default_factory=list)
    failed_ids: List[int] = field(default_factory=list)
    summary_entry: Optional[LogEntry] = None

    @property
    def complete(self) -> bool:
        return not self.failed_ids


class VenueAttachmentTracker:
    """Attaches generators to venues and closes intervals on reassignment or deletion."""

    def __init__(self, db: Session, audit: Optional[AuditLogger] = None):
        self.db = db
        self.audit = audit or AuditLogger(db)

    def attach(
        self,
        generator: Generator,
        venue_id: int,
        reason: DetachReason = DetachReason.MANUAL_REASSIGNMENT
    ) -> bool:
        """
        Point generator at venue_id.

        Returns False (and changes nothing) when the generator is already there.
        The caller commits.
        """
        if generator.venue_id is not None and generator.venue_id == venue_id:
            return False

        venue = self.db.query(Venue).filter(Venue.id == venue_id).first()
        if venue is None:
            raise NotFoundError("Venue not found")
        if not venue.is_active:
            raise ValidationError(f'Venue "{venue.name}" has been deleted and cannot take new generators')

        now = datetime.utcnow()
        self._close_open_interval(generator, reason, now)

        generator.venue = venue
        generator.venue_history.append(VenueAttachment(
            venue_id=venue.id,
            venue_name=venue.name,
            attached_at=now
        ))
        logger.debug("Generator %s attached to venue %s", generator.id, venue.id)
        return True

    def detach(self, generator: Generator, reason: DetachReason = DetachReason.OTHER) -> bool:
        """Close the open interval and clear the venue. The caller commits."""
        if generator.venue_id is None and generator.open_attachment is None:
            return False

        self._close_open_interval(generator, reason, datetime.utcnow())
        generator.venue = None
        generator.venue_id = None
        return True

    def detach_all(
        self,
        venue_id: int,
        acting_user: User,
        reason: DetachReason = DetachReason.VENUE_DELETED
    ) -> CascadeResult:
        """
        Detach every active generator from venue_id.

        Each generator is its own commit (detach plus VENUE_UNTAGGED entry).
        A failure rolls back that generator only; the loop carries on. One
        VENUE_DELETED summary entry is written at the end.
        """
        venue = self.db.query(Venue).filter(Venue.id == venue_id).first()
        if venue is None:
            raise NotFoundError("Venue not found")
        venue_name = venue.name

        generator_ids = [
            row.id for row in self.db.query(Generator.id).filter(
                Generator.venue_id == venue_id,
                Generator.is_active.is_(True)
            ).all()
        ]

        result = CascadeResult(venue_id=venue_id)
        for generator_id in generator_ids:
            try:
                self._detach_one(generator_id, venue, acting_user, reason)
            except (SQLAlchemyError, GensetError):
                self.db.rollback()
                logger.exception("Failed to detach generator %s from venue %s", generator_id, venue_id)
                result.failed_ids.append(generator_id)
            else:
                result.detached_ids.append(generator_id)

        notes = f"Venue deleted: {venue_name}. {len(result.detached_ids)} generators untagged."
        if result.failed_ids:
            notes += f" {len(result.failed_ids)} could not be untagged."

        try:
            result.summary_entry = self.audit.record(
                action=LogAction.VENUE_DELETED,
                user=acting_user,
                venue=venue,
                notes=notes,
                affected_generators=len(result.detached_ids)
            )
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to write VENUE_DELETED summary for venue %s", venue_id)

        logger.info(
            "Venue %s cascade: %d detached, %d failed",
            venue_id, len(result.detached_ids), len(result.failed_ids)
        )
        return result

    def history(self, generator_id: int, acting_user: Optional[User] = None) -> List[VenueAttachment]:
        """Attachment intervals, oldest first. Scoped to acting_user when given."""
        generator = self.db.query(Generator).filter(
            Generator.id == generator_id,
            Generator.is_active.is_(True)
        ).first()
        if generator is None:
            raise NotFoundError("Generator not found")
        if acting_user is not None and not access_policy.can_mutate_generator(acting_user, generator):
            raise ForbiddenError("Access denied. Generator not in your assigned venue.")
        return list(generator.venue_history)

    def _detach_one(self, generator_id: int, venue: Venue, acting_user: User, reason: DetachReason) -> None:
        generator = self.db.query(Generator).filter(Generator.id == generator_id).first()
        if generator is None or generator.venue_id != venue.id:
            # Moved elsewhere since the id list was read
            raise NotFoundError(f"Generator {generator_id} is no longer attached to venue {venue.id}")

        self.detach(generator, reason)
        self.audit.record(
            action=LogAction.VENUE_UNTAGGED,
            user=acting_user,
            genset=generator,
            venue=venue,
            previous_status=generator.status,
            new_status=generator.status,
            notes=f"Generator untagged due to venue deletion: {venue.name}",
            commit=False
        )
        self.db.commit()

    @staticmethod
    def _close_open_interval(generator: Generator, reason: DetachReason, now: datetime) -> None:
        for attachment in generator.venue_history:
            if attachment.detached_at is None:
                attachment.detached_at = max(now, attachment.attached_at)
                attachment.detached_reason = reason
