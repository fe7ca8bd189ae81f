"""
Tests for the most-recent-meeting lookup.
"""
from datetime import datetime, timedelta, timezone

import pytest

from sam.services.evidence_store import EvidenceRecord, EvidenceSource
from sam.services.recent_meeting import effective_end, find_recent_meeting

pytestmark = pytest.mark.unit

NOW = datetime(2024, 6, 15, 11, 0, tzinfo=timezone.utc)


def _meeting(start_offset_min, end_offset_min=None, people=("bob-1",), source=EvidenceSource.CALENDAR, title="Meeting"):
    start = NOW + timedelta(minutes=start_offset_min)
    end = NOW + timedelta(minutes=end_offset_min) if end_offset_min is not None else None
    return EvidenceRecord(
        source=source,
        source_uid=f"eventkit:{title}",
        occurred_at=start,
        ended_at=end,
        title=title,
        linked_people=list(people),
    )


class TestEffectiveEnd:
    def test_recorded_end(self):
        meeting = _meeting(-60, -30)
        assert effective_end(meeting) == NOW - timedelta(minutes=30)

    def test_default_duration(self):
        meeting = _meeting(-90)
        assert effective_end(meeting) == NOW - timedelta(minutes=30)


class TestFindRecentMeeting:
    """Tests for find_recent_meeting."""

    def test_just_finished_meeting(self):
        meeting = _meeting(-60, -10)
        assert find_recent_meeting([meeting], "bob-1", now=NOW) is meeting

    def test_ended_exactly_now(self):
        meeting = _meeting(-60, 0)
        assert find_recent_meeting([meeting], "bob-1", now=NOW) is meeting

    def test_outside_window(self):
        meeting = _meeting(-240, -180)
        assert find_recent_meeting([meeting], "bob-1", now=NOW) is None
        assert find_recent_meeting([meeting], "bob-1", now=NOW, max_window=timedelta(hours=4)) is meeting

    def test_in_progress_meeting_is_not_a_candidate(self):
        meeting = _meeting(-30, 30)
        assert find_recent_meeting([meeting], "bob-1", now=NOW) is None

    def test_no_end_uses_default_duration(self):
        ended = _meeting(-70)
        running = _meeting(-50, title="Running")
        assert find_recent_meeting([ended], "bob-1", now=NOW) is ended
        assert find_recent_meeting([running], "bob-1", now=NOW) is None

    def test_superseded_by_started_meeting(self):
        """
        A later meeting with the person that already started hides the earlier one.

        Read with M2 still in progress, "M1 ended 30 min ago, M2 started 10 min
        ago" yields no meeting at all: M2 is not a candidate until it has ended,
        yet it already supersedes M1.
        """
        earlier = _meeting(-120, -60, title="Earlier")
        current = _meeting(-30, 30, title="Current")
        assert find_recent_meeting([earlier, current], "bob-1", now=NOW) is None

    def test_not_superseded_by_future_meeting(self):
        earlier = _meeting(-120, -60, title="Earlier")
        upcoming = _meeting(30, 90, title="Upcoming")
        assert find_recent_meeting([earlier, upcoming], "bob-1", now=NOW) is earlier

    def test_back_to_back_meetings_returns_latest(self):
        """
        M1 09:00-10:00 then M2 10:50-10:59: M2 wins, M1 is superseded.

        M2 is returned only because it has already ended; see
        test_superseded_by_started_meeting for the in-progress case.
        """
        m1 = _meeting(-120, -60, title="M1")
        m2 = _meeting(-10, -1, title="M2")
        assert find_recent_meeting([m1, m2], "bob-1", now=NOW) is m2
        assert find_recent_meeting([m2, m1], "bob-1", now=NOW) is m2

    def test_latest_end_tried_first(self):
        """Overlapping candidates: the one that ended last is returned."""
        long_one = _meeting(-90, -5, title="Long")
        short_one = _meeting(-60, -30, title="Short")
        assert find_recent_meeting([short_one, long_one], "bob-1", now=NOW) is long_one

    def test_other_people_and_sources_ignored(self):
        alice_meeting = _meeting(-60, -10, people=("alice-1",), title="Alice")
        call = _meeting(-60, -10, source=EvidenceSource.PHONE_CALL, title="Call")
        assert find_recent_meeting([alice_meeting, call], "bob-1", now=NOW) is None

    def test_meeting_with_someone_else_does_not_supersede(self):
        earlier = _meeting(-120, -60, title="Earlier")
        other = _meeting(-30, 30, people=("alice-1",), title="Other")
        assert find_recent_meeting([earlier, other], "bob-1", now=NOW) is earlier

    def test_naive_now_treated_as_utc(self):
        meeting = _meeting(-60, -10)
        assert find_recent_meeting([meeting], "bob-1", now=NOW.replace(tzinfo=None)) is meeting
