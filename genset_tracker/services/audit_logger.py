"""
Audit logger - the only writer of LogEntry rows.

System transitions (toggle, create, update, delete, venue cascade) call
record(). Admins additionally create, edit and delete manual entries.
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional
from sqlalchemy.orm import Session
from genset_tracker.config import settings
from genset_tracker.models.audit import LogEntry
from genset_tracker.models.domain import Generator, User, Venue
from genset_tracker.models.enums import GeneratorStatus, LogAction
from genset_tracker.services import access_policy
from genset_tracker.services.errors import NotFoundError, ValidationError

logger = logging.getLogger("gensets.audit")

MAX_NOTES_LENGTH = 500


def as_naive_utc(ts: Optional[datetime]) -> Optional[datetime]:
    """Stored timestamps are naive UTC; aware values are converted first."""
    if ts is None or ts.tzinfo is None:
        return ts
    return ts.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass
class LogFilter:
    """Optional equality filters for log queries."""
    genset_id: Optional[int] = None
    venue_id: Optional[int] = None
    user_id: Optional[int] = None
    action: Optional[LogAction] = None

    def as_dict(self) -> dict:
        return {k: v for k, v in self.__dict__.items() if v is not None}


@dataclass
class LogPage:
    entries: List[LogEntry] = field(default_factory=list)
    page: int = 1
    limit: int = 50
    total: int = 0

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


class AuditLogger:
    """Records, edits, deletes and queries audit entries."""

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        action: LogAction,
        user: User,
        genset: Optional[Generator] = None,
        venue: Optional[Venue] = None,
        previous_status: Optional[GeneratorStatus] = None,
        new_status: Optional[GeneratorStatus] = None,
        notes: Optional[str] = None,
        timestamp: Optional[datetime] = None,
        affected_generators: Optional[int] = None,
        commit: bool = True
    ) -> LogEntry:
        """
        Append an entry.

        venue defaults to the generator's current venue. Pass commit=False to
        fold the entry into the caller's unit of work.
        """
        if action is None:
            raise ValidationError("Log action is required")
        if user is None:
            raise ValidationError("Acting user is required for log entries")

        if venue is None and genset is not None:
            venue = genset.venue

        if genset is None and action != LogAction.VENUE_DELETED:
            raise ValidationError(f"Generator is required for {action.value} log entries")
        if venue is None and action in (LogAction.VENUE_DELETED, LogAction.VENUE_UNTAGGED):
            raise ValidationError(f"Venue is required for {action.value} log entries")

        entry = LogEntry(
            genset_id=genset.id if genset is not None else None,
            venue_id=venue.id if venue is not None else None,
            user_id=user.id,
            action=action,
            previous_status=previous_status,
            new_status=new_status,
            notes=self._clean_notes(notes),
            timestamp=as_naive_utc(timestamp) or datetime.utcnow(),
            affected_generators=affected_generators
        )
        self.db.add(entry)

        if commit:
            self.db.commit()
            self.db.refresh(entry)
            logger.debug("Recorded %s entry %s for genset=%s", action.value, entry.id, entry.genset_id)

        return entry

    def record_manual(
        self,
        acting_user: User,
        genset_id: int,
        action: LogAction,
        notes: str,
        custom_timestamp: Optional[datetime] = None
    ) -> LogEntry:
        """Admin-only manual entry, optionally backdated."""
        access_policy.require_admin(acting_user, "create manual log entries")

        genset = self._manual_target(genset_id, action, notes)
        previous_status, new_status = self._status_context(action, genset)

        entry = self.record(
            action=action,
            user=acting_user,
            genset=genset,
            previous_status=previous_status,
            new_status=new_status,
            notes=notes.strip(),
            timestamp=custom_timestamp
        )
        logger.info("Manual %s entry %s created by %s", action.value, entry.id, acting_user.username)
        return entry

    def edit(
        self,
        acting_user: User,
        log_id: int,
        genset_id: int,
        action: LogAction,
        notes: str,
        custom_timestamp: Optional[datetime] = None
    ) -> LogEntry:
        """
        Rewrite an entry in place (admin only).

        Status context is recomputed from the generator's current status;
        editing an entry never replays a toggle.
        """
        access_policy.require_admin(acting_user, "edit log entries")

        entry = self.db.query(LogEntry).filter(LogEntry.id == log_id).first()
        if entry is None:
            raise NotFoundError("Log entry not found")

        genset = self._manual_target(genset_id, action, notes)
        previous_status, new_status = self._status_context(action, genset)

        entry.genset_id = genset.id
        entry.venue_id = genset.venue_id
        entry.action = action
        entry.notes = self._clean_notes(notes.strip())
        entry.previous_status = previous_status
        entry.new_status = new_status
        if custom_timestamp is not None:
            entry.timestamp = as_naive_utc(custom_timestamp)

        self.db.commit()
        self.db.refresh(entry)
        logger.info("Log entry %s edited by %s", entry.id, acting_user.username)
        return entry

    def delete(self, acting_user: User, log_id: int) -> None:
        """Hard delete (admin only). The row is gone afterwards."""
        access_policy.require_admin(acting_user, "delete log entries")

        entry = self.db.query(LogEntry).filter(LogEntry.id == log_id).first()
        if entry is None:
            raise NotFoundError("Log entry not found")

        self.db.delete(entry)
        self.db.commit()
        logger.info("Log entry %s deleted by %s", log_id, acting_user.username)

    def query(
        self,
        acting_user: User,
        filters: Optional[LogFilter] = None,
        page: int = 1,
        limit: Optional[int] = None
    ) -> LogPage:
        """Entries in the caller's scope, newest first."""
        limit = limit or settings.LOG_PAGE_SIZE
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")
        limit = min(limit, settings.LOG_PAGE_SIZE_MAX)

        scope = access_policy.scope_filter(acting_user, (filters or LogFilter()).as_dict())
        if scope is None:
            return LogPage(entries=[], page=page, limit=limit, total=0)

        query = self.db.query(LogEntry)
        if "genset_id" in scope:
            query = query.filter(LogEntry.genset_id == scope["genset_id"])
        if "venue_id" in scope:
            query = query.filter(LogEntry.venue_id == scope["venue_id"])
        if "user_id" in scope:
            query = query.filter(LogEntry.user_id == scope["user_id"])
        if "action" in scope:
            query = query.filter(LogEntry.action == scope["action"])

        total = query.count()
        entries = (
            query.order_by(LogEntry.timestamp.desc(), LogEntry.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return LogPage(entries=entries, page=page, limit=limit, total=total)

    def _manual_target(self, genset_id: int, action: LogAction, notes: str) -> Generator:
        if not genset_id or action is None or not notes or not notes.strip():
            raise ValidationError("Generator, action, and notes are required")

        genset = self.db.query(Generator).filter(Generator.id == genset_id).first()
        if genset is None:
            raise NotFoundError("Generator not found")
        if genset.venue_id is None:
            raise ValidationError("Generator must be assigned to a venue before logging against it")
        return genset

    @staticmethod
    def _status_context(action: LogAction, genset: Generator):
        """(previous_status, new_status) derived from the generator as it is now."""
        if action in (LogAction.TURN_ON, LogAction.TURN_OFF):
            return genset.status, genset.status
        if action == LogAction.MANUAL:
            return None, genset.status
        return None, None

    @staticmethod
    def _clean_notes(notes: Optional[str]) -> Optional[str]:
        if notes is None:
            return None
        if len(notes) > MAX_NOTES_LENGTH:
            raise ValidationError(f"Notes cannot exceed {MAX_NOTES_LENGTH} characters")
        return notes
