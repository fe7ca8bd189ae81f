"""
Most-recent-meeting lookup for SAM.

Used when capturing a note right after a meeting: which calendar evidence
with this person just finished, and hasn't been superseded by a later
meeting with them that has already started?
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from sam.services.evidence_store import EvidenceRecord, EvidenceSource
from sam.utils.datetime_utils import make_aware as _make_aware

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = timedelta(hours=2)
DEFAULT_MEETING_DURATION = timedelta(hours=1)


def effective_end(record: EvidenceRecord, default_duration: timedelta = DEFAULT_MEETING_DURATION) -> datetime:
    """End time, or start plus the assumed duration when none was recorded."""
    return record.ended_at or (record.occurred_at + default_duration)


def find_recent_meeting(
    meetings: Iterable[EvidenceRecord],
    person_id: str,
    now: Optional[datetime] = None,
    max_window: timedelta = DEFAULT_WINDOW,
    default_duration: timedelta = DEFAULT_MEETING_DURATION,
) -> Optional[EvidenceRecord]:
    """
    Find the most recent unsuperseded meeting with a person.

    A candidate is calendar evidence linked to the person that ended between
    now - max_window and now. Candidates are tried latest end first; the
    first one with no other meeting with the person that started after its
    end (and has already started) wins.

    Args:
        meetings: Evidence to search (non-calendar or unlinked items are ignored)
        person_id: Identity id
        now: Reference time (default: current UTC time)
        max_window: How long after it ended a meeting still counts
        default_duration: Assumed length when no end time was recorded

    Returns:
        The meeting, or None
    """
    now = _make_aware(now) if now else datetime.now(timezone.utc)

    linked = [
        record for record in meetings
        if record.source == EvidenceSource.CALENDAR.value and person_id in record.linked_people
    ]

    candidates = []
    for record in linked:
        elapsed = now - effective_end(record, default_duration)
        if timedelta(0) <= elapsed <= max_window:
            candidates.append(record)

    candidates.sort(key=lambda r: effective_end(r, default_duration), reverse=True)

    for candidate in candidates:
        end = effective_end(candidate, default_duration)
        superseded = any(
            other.id != candidate.id and end < other.occurred_at <= now
            for other in linked
        )
        if not superseded:
            return candidate

    logger.debug(f"No recent meeting for {person_id} among {len(linked)} linked meetings")
    return None
