"""
Power state machine for generators.

All ON/OFF transitions MUST go through here. The safety rule it enforces:
a generator may only be energized while attached to an active venue, and
may always be de-energized.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from genset_tracker.models.audit import LogEntry
from genset_tracker.models.domain import Generator, User
from genset_tracker.models.enums import GeneratorStatus, LogAction
from genset_tracker.services import access_policy
from genset_tracker.services.audit_logger import AuditLogger
from genset_tracker.services.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    PreconditionFailedError
)

logger = logging.getLogger("gensets.power")


@dataclass
class ToggleResult:
    """
    Outcome of a toggle.

    audit_error is set when the state change committed but its log entry
    could not be written; log_entry is None in that case.
    """
    generator: Generator
    previous_status: GeneratorStatus
    new_status: GeneratorStatus
    log_entry: Optional[LogEntry] = None
    audit_error: Optional[str] = None


class PowerStateMachine:
    """Enforces the ON/OFF transition rules and records each transition."""

    def __init__(self, db: Session, audit: Optional[AuditLogger] = None):
        self.db = db
        self.audit = audit or AuditLogger(db)

    def check_can_energize(self, generator: Generator) -> None:
        """
        Raise PreconditionFailedError unless generator may be turned ON.

        - NO_VENUE_ASSIGNED: the generator has no venue
        - VENUE_INACTIVE: the venue has been deleted (message names it)
        """
        venue = generator.venue
        if venue is None:
            raise PreconditionFailedError(
                "Cannot turn on generator: No venue assigned. "
                "Please assign this generator to an active venue before operation.",
                code=PreconditionFailedError.NO_VENUE_ASSIGNED
            )
        if not venue.is_active:
            raise PreconditionFailedError(
                f'Cannot turn on generator: Venue "{venue.name}" has been deactivated. '
                f"Generator cannot be operated without an active venue.",
                code=PreconditionFailedError.VENUE_INACTIVE
            )

    def toggle(self, generator_id: int, acting_user: User) -> ToggleResult:
        """
        Flip a generator between ON and OFF.

        Preconditions are checked before anything is written. The generator
        commit happens first; the audit entry follows and a failure there is
        reported on the result without undoing the transition.
        """
        generator = self.db.query(Generator).filter(Generator.id == generator_id).first()
        if generator is None or not generator.is_active:
            raise NotFoundError("Generator not found")

        if not access_policy.can_mutate_generator(acting_user, generator):
            raise ForbiddenError("Access denied. Generator not in your assigned venue.")

        previous_status = generator.status
        if previous_status == GeneratorStatus.ON:
            new_status = GeneratorStatus.OFF
        else:
            new_status = GeneratorStatus.ON
            self.check_can_energize(generator)

        generator.status = new_status
        generator.last_status_change = datetime.utcnow()
        generator.last_status_changed_by_id = acting_user.id

        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            logger.warning("Stale toggle of generator %s by %s", generator_id, acting_user.username)
            raise ConflictError(
                "Generator was changed by someone else. Reload and try again.",
                code="STALE_GENERATOR"
            )
        self.db.refresh(generator)

        logger.info(
            "Generator %s turned %s by %s",
            generator.id, new_status.value, acting_user.username
        )

        result = ToggleResult(generator=generator, previous_status=previous_status, new_status=new_status)
        verb = "turned on" if new_status == GeneratorStatus.ON else "turned off"
        try:
            result.log_entry = self.audit.record(
                action=LogAction.TURN_ON if new_status == GeneratorStatus.ON else LogAction.TURN_OFF,
                user=acting_user,
                genset=generator,
                previous_status=previous_status,
                new_status=new_status,
                notes=f"Generator {verb} by {acting_user.username}"
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Generator %s %s but its log entry was not written", generator.id, verb)
            result.audit_error = str(e)

        return result
