"""
Tests for re-resolution after identity directory changes.
"""
from datetime import datetime, timezone

import pytest

from sam.services.evidence_dtos import AttendeeDTO, EventDTO
from sam.services.evidence_merger import EvidenceMerger
from sam.services.evidence_store import EvidenceRecord, EvidenceSource, ParticipantHint
from sam.services.identity_directory import IdentityDirectory
from sam.services.identity_index import IdentityIndex
from sam.services.participant_resolver import ParticipantResolver
from sam.services.re_resolver import refresh_participant_resolution, reresolve_record

pytestmark = pytest.mark.unit

START = datetime(2024, 6, 15, 10, 0, tzinfo=timezone.utc)


def _resolver(directory):
    return ParticipantResolver(IdentityIndex.from_directory(directory))


def _record(emails, linked=None, source=EvidenceSource.CALENDAR, uid="eventkit:E1"):
    return EvidenceRecord(
        source=source,
        source_uid=uid,
        occurred_at=START,
        title="Sync",
        participant_hints=[ParticipantHint(display_name=e, raw_email=e) for e in emails],
        linked_people=list(linked or []),
    )


class TestReresolveRecord:
    """Tests for re-resolving a single record."""

    def test_new_alias_verifies_and_links(self, directory):
        record = _record(["bob.jones@work.example"])
        assert reresolve_record(record, _resolver(directory))
        assert record.participant_hints[0].is_verified
        assert record.linked_people == ["bob-1"]

    def test_no_change(self, directory):
        record = _record(["bob@example.com"], linked=["bob-1"])
        record.participant_hints[0].is_verified = True
        assert not reresolve_record(record, _resolver(directory))

    def test_link_order_alone_is_not_a_change(self, directory):
        record = _record(["bob@example.com", "alice@example.com"], linked=["bob-1", "alice-1"])
        for hint in record.participant_hints:
            hint.is_verified = True
        assert not reresolve_record(record, _resolver(directory))
        assert record.linked_people == ["bob-1", "alice-1"]

    def test_removed_identity_unlinks(self, write_directory, identities):
        record = _record(["bob@example.com"], linked=["bob-1"])
        record.participant_hints[0].is_verified = True

        identities["identities"] = [i for i in identities["identities"] if i["id"] != "bob-1"]
        directory = IdentityDirectory(write_directory(identities))

        assert reresolve_record(record, _resolver(directory))
        assert record.linked_people == []
        assert not record.participant_hints[0].is_verified

    def test_current_user_stays_verified(self, directory):
        """An attendee flagged as the device owner keeps its verification."""
        record = _record(["me.personal@gmail.example", "bob@example.com"], linked=["bob-1"])
        record.participant_hints[0].is_current_user = True
        for hint in record.participant_hints:
            hint.is_verified = True

        assert not reresolve_record(record, _resolver(directory))
        assert [h.is_verified for h in record.participant_hints] == [True, True]


@pytest.mark.integration
class TestRefreshParticipantResolution:
    """Tests for the store-wide pass."""

    def test_only_changed_records_written(self, temp_store, directory):
        stale = temp_store.insert(_record(["bob.jones@work.example"], uid="eventkit:stale"))
        fresh = _record(["alice@example.com"], linked=["alice-1"], uid="eventkit:fresh")
        fresh.participant_hints[0].is_verified = True
        temp_store.insert(fresh)
        temp_store.insert(
            EvidenceRecord(source=EvidenceSource.NOTE, occurred_at=START, title="Note",
                           participant_hints=[ParticipantHint(display_name="x", raw_email="bob@example.com")])
        )
        temp_store.insert(_record([], uid="eventkit:nohints"))

        with temp_store.transaction() as conn:
            stats = refresh_participant_resolution(temp_store, conn, _resolver(directory))

        assert stats.examined == 2
        assert stats.updated == 1
        assert temp_store.fetch_by_id(stale.id).linked_people == ["bob-1"]

    def test_current_user_hint_survives_refresh(self, temp_store, directory):
        """The device owner's own calendar hint is not un-verified by a no-op refresh."""
        resolver = _resolver(directory)
        event = EventDTO(
            source_uid="eventkit:E1",
            title="Sync",
            start_date=START,
            attendees=[
                AttendeeDTO(name="Me (personal)", email_address="me.personal@gmail.example", is_current_user=True),
                AttendeeDTO(name="Bob", email_address="bob@example.com"),
            ],
        )
        with temp_store.transaction() as conn:
            record, _ = EvidenceMerger(temp_store, resolver).upsert_event(event, conn)
        assert [h.is_verified for h in record.participant_hints] == [True, True]

        with temp_store.transaction() as conn:
            stats = refresh_participant_resolution(temp_store, conn, _resolver(directory))

        assert (stats.examined, stats.updated) == (1, 0)
        stored = temp_store.fetch_by_id(record.id)
        assert stored.participant_hints[0].is_current_user
        assert [h.is_verified for h in stored.participant_hints] == [True, True]
