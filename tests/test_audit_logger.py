"""
Tests for the audit logger: recording, manual entries, admin edits and
deletes, and role-scoped queries.
"""
import pytest
from datetime import datetime, timedelta, timezone
from genset_tracker.models.audit import LogEntry
from genset_tracker.models.enums import GeneratorStatus, LogAction
from genset_tracker.services.audit_logger import AuditLogger, LogFilter
from genset_tracker.services.errors import ForbiddenError, NotFoundError, ValidationError
from genset_tracker.services.state_machine import PowerStateMachine


class TestRecord:

    def test_created_entry_for_new_generator(self, db_session, make_generator, admin_user, venue):
        generator = make_generator(venue=venue)

        entry = db_session.query(LogEntry).filter(
            LogEntry.genset_id == generator.id,
            LogEntry.action == LogAction.CREATED
        ).one()
        assert entry.venue_id == venue.id
        assert entry.user_id == admin_user.id
        assert entry.new_status == GeneratorStatus.OFF

    def test_generator_required_except_for_venue_deletion(self, db_session, admin_user, venue):
        audit = AuditLogger(db_session)

        with pytest.raises(ValidationError):
            audit.record(action=LogAction.TURN_ON, user=admin_user, venue=venue)

        entry = audit.record(action=LogAction.VENUE_DELETED, user=admin_user, venue=venue, notes="gone")
        assert entry.genset_id is None

    def test_venue_required_for_untag_entries(self, db_session, make_generator, admin_user):
        generator = make_generator()

        with pytest.raises(ValidationError):
            AuditLogger(db_session).record(action=LogAction.VENUE_UNTAGGED, user=admin_user, genset=generator)

    def test_venue_defaults_to_generators_venue(self, db_session, make_generator, admin_user, venue):
        generator = make_generator(venue=venue)

        entry = AuditLogger(db_session).record(action=LogAction.UPDATED, user=admin_user, genset=generator)

        assert entry.venue_id == venue.id

    def test_notes_longer_than_500_rejected(self, db_session, make_generator, admin_user, venue):
        generator = make_generator(venue=venue)

        with pytest.raises(ValidationError):
            AuditLogger(db_session).record(
                action=LogAction.MANUAL, user=admin_user, genset=generator, notes="x" * 501
            )

    def test_timestamp_defaults_to_now(self, db_session, make_generator, admin_user, venue):
        generator = make_generator(venue=venue)
        before = datetime.utcnow()

        entry = AuditLogger(db_session).record(action=LogAction.UPDATED, user=admin_user, genset=generator)

        assert before <= entry.timestamp <= datetime.utcnow()


class TestManualEntries:

    def test_admin_creates_backdated_manual_entry(self, db_session, make_generator, admin_user, venue):
        generator = make_generator(venue=venue)
        backdate = datetime(2024, 1, 15, 8, 30)

        entry = AuditLogger(db_session).record_manual(
            admin_user, generator.id, LogAction.MANUAL, "  Refuelled before event  ", backdate
        )

        assert entry.timestamp == backdate
        assert entry.notes == "Refuelled before event"
        assert entry.previous_status is None
        assert entry.new_status == GeneratorStatus.OFF

    def test_offset_timestamp_stored_as_utc(self, db_session, make_generator, admin_user, venue):
        generator = make_generator(venue=venue)
        plus_five = timezone(timedelta(hours=5))

        entry = AuditLogger(db_session).record_manual(
            admin_user, generator.id, LogAction.MANUAL, "Site local time", datetime(2024, 1, 1, 10, 0, tzinfo=plus_five)
        )

        assert entry.timestamp == datetime(2024, 1, 1, 5, 0)

    def test_manual_toggle_entry_does_not_change_status(self, db_session, make_generator, admin_user, venue):
        generator = make_generator(venue=venue)

        entry = AuditLogger(db_session).record_manual(admin_user, generator.id, LogAction.TURN_ON, "Started by hand")
        db_session.refresh(generator)

        assert generator.status == GeneratorStatus.OFF
        assert entry.previous_status == GeneratorStatus.OFF
        assert entry.new_status == GeneratorStatus.OFF

    def test_operator_cannot_create_manual_entries(self, db_session, make_generator, operator, venue):
        generator = make_generator(venue=venue)

        with pytest.raises(ForbiddenError):
            AuditLogger(db_session).record_manual(operator, generator.id, LogAction.MANUAL, "note")

    def test_manual_entry_requires_notes(self, db_session, make_generator, admin_user, venue):
        generator = make_generator(venue=venue)

        with pytest.raises(ValidationError):
            AuditLogger(db_session).record_manual(admin_user, generator.id, LogAction.MANUAL, "   ")

    def test_manual_entry_requires_venue(self, db_session, make_generator, admin_user):
        generator = make_generator()

        with pytest.raises(ValidationError):
            AuditLogger(db_session).record_manual(admin_user, generator.id, LogAction.MANUAL, "note")

    def test_manual_entry_for_missing_generator(self, db_session, admin_user):
        with pytest.raises(NotFoundError):
            AuditLogger(db_session).record_manual(admin_user, 9999, LogAction.MANUAL, "note")


class TestEditAndDelete:

    def test_edit_recomputes_status_from_current_generator(self, db_session, make_generator, admin_user, venue):
        """Client-supplied history is ignored; status context reflects the generator now."""
        generator = make_generator(venue=venue)
        audit = AuditLogger(db_session)
        entry = audit.record_manual(admin_user, generator.id, LogAction.MANUAL, "first note")

        PowerStateMachine(db_session).toggle(generator.id, admin_user)
        edited = audit.edit(admin_user, entry.id, generator.id, LogAction.TURN_OFF, "corrected note")

        assert edited.id == entry.id
        assert edited.action == LogAction.TURN_OFF
        assert edited.notes == "corrected note"
        assert edited.previous_status == GeneratorStatus.ON
        assert edited.new_status == GeneratorStatus.ON

    def test_edit_to_non_status_action_clears_status(self, db_session, make_generator, admin_user, venue):
        generator = make_generator(venue=venue)
        audit = AuditLogger(db_session)
        entry = audit.record_manual(admin_user, generator.id, LogAction.MANUAL, "note")

        edited = audit.edit(admin_user, entry.id, generator.id, LogAction.UPDATED, "note")

        assert edited.previous_status is None
        assert edited.new_status is None

    def test_edit_keeps_timestamp_unless_given(self, db_session, make_generator, admin_user, venue):
        generator = make_generator(venue=venue)
        audit = AuditLogger(db_session)
        entry = audit.record_manual(admin_user, generator.id, LogAction.MANUAL, "note")
        original = entry.timestamp

        edited = audit.edit(admin_user, entry.id, generator.id, LogAction.MANUAL, "again")
        assert edited.timestamp == original

        backdate = original - timedelta(days=2)
        edited = audit.edit(admin_user, entry.id, generator.id, LogAction.MANUAL, "again", backdate)
        assert edited.timestamp == backdate

        edited = audit.edit(
            admin_user, entry.id, generator.id, LogAction.MANUAL, "again",
            datetime(2024, 6, 1, 12, 0, tzinfo=timezone(timedelta(hours=-4)))
        )
        assert edited.timestamp == datetime(2024, 6, 1, 16, 0)

    def test_operator_cannot_edit(self, db_session, make_generator, admin_user, operator, venue):
        generator = make_generator(venue=venue)
        entry = AuditLogger(db_session).record_manual(admin_user, generator.id, LogAction.MANUAL, "note")

        with pytest.raises(ForbiddenError):
            AuditLogger(db_session).edit(operator, entry.id, generator.id, LogAction.MANUAL, "mine now")

    def test_edit_missing_entry(self, db_session, make_generator, admin_user, venue):
        generator = make_generator(venue=venue)

        with pytest.raises(NotFoundError):
            AuditLogger(db_session).edit(admin_user, 9999, generator.id, LogAction.MANUAL, "note")

    def test_delete_is_hard(self, db_session, make_generator, admin_user, venue):
        """Deleted entries are gone, unlike soft-deleted generators."""
        generator = make_generator(venue=venue)
        audit = AuditLogger(db_session)
        entry = audit.record_manual(admin_user, generator.id, LogAction.MANUAL, "mistake")
        entry_id = entry.id

        audit.delete(admin_user, entry_id)

        assert db_session.query(LogEntry).filter(LogEntry.id == entry_id).first() is None
        with pytest.raises(NotFoundError):
            audit.delete(admin_user, entry_id)

    def test_operator_cannot_delete(self, db_session, make_generator, admin_user, operator, venue):
        generator = make_generator(venue=venue)
        entry = AuditLogger(db_session).record_manual(admin_user, generator.id, LogAction.MANUAL, "note")

        with pytest.raises(ForbiddenError):
            AuditLogger(db_session).delete(operator, entry.id)


class TestQuery:

    def test_newest_first(self, db_session, make_generator, admin_user, venue):
        generator = make_generator(venue=venue)
        audit = AuditLogger(db_session)
        old = audit.record_manual(admin_user, generator.id, LogAction.MANUAL, "old", datetime(2020, 1, 1))
        new = audit.record_manual(admin_user, generator.id, LogAction.MANUAL, "new", datetime(2030, 1, 1))

        page = audit.query(admin_user, LogFilter(action=LogAction.MANUAL))

        assert [e.id for e in page.entries] == [new.id, old.id]

    def test_pagination_metadata(self, db_session, make_generator, admin_user, venue):
        generator = make_generator(venue=venue)
        audit = AuditLogger(db_session)
        for i in range(5):
            audit.record_manual(admin_user, generator.id, LogAction.MANUAL, f"note {i}")

        page = audit.query(admin_user, LogFilter(action=LogAction.MANUAL), page=2, limit=2)

        assert page.total == 5
        assert page.pages == 3
        assert len(page.entries) == 2

    def test_filters_by_generator_and_user(self, db_session, make_generator, admin_user, operator, venue):
        first = make_generator(name="First", venue=venue)
        second = make_generator(name="Second", venue=venue)
        PowerStateMachine(db_session).toggle(first.id, operator)
        PowerStateMachine(db_session).toggle(second.id, admin_user)

        page = AuditLogger(db_session).query(admin_user, LogFilter(user_id=operator.id))
        assert [e.genset_id for e in page.entries] == [first.id]

        page = AuditLogger(db_session).query(admin_user, LogFilter(genset_id=second.id))
        assert {e.action for e in page.entries} == {LogAction.CREATED, LogAction.TURN_ON}

    def test_operator_only_sees_own_venue(self, db_session, make_generator, admin_user, operator, venue, other_venue):
        mine = make_generator(name="Mine", venue=venue)
        theirs = make_generator(name="Theirs", venue=other_venue)
        PowerStateMachine(db_session).toggle(mine.id, admin_user)
        PowerStateMachine(db_session).toggle(theirs.id, admin_user)

        page = AuditLogger(db_session).query(operator)

        assert page.total > 0
        assert all(e.venue_id == venue.id for e in page.entries)

    def test_operator_asking_for_other_venue_gets_nothing(self, db_session, make_generator, operator, other_venue):
        make_generator(venue=other_venue)

        page = AuditLogger(db_session).query(operator, LogFilter(venue_id=other_venue.id))

        assert page.total == 0
        assert page.entries == []

    def test_unassigned_operator_forbidden(self, db_session, unassigned_user):
        with pytest.raises(ForbiddenError):
            AuditLogger(db_session).query(unassigned_user)

    def test_invalid_page_rejected(self, db_session, admin_user):
        with pytest.raises(ValidationError):
            AuditLogger(db_session).query(admin_user, page=0)
