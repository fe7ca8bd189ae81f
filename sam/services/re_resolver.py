"""
Re-resolution of evidence participants after identity directory changes.

When people are added, removed or gain an email alias, existing evidence
may now (or no longer) match them. This pass re-verifies every hint that
carries an email, recomputes the linked identities, and writes back only the
records that actually changed.
"""
import logging
import sqlite3
from dataclasses import dataclass

from sam.services.evidence_store import PARTICIPANT_SOURCES, EvidenceRecord, EvidenceStore
from sam.services.participant_resolver import ParticipantResolver

logger = logging.getLogger(__name__)


@dataclass
class ReResolutionStats:
    """Counts from one re-resolution pass."""
    examined: int = 0
    updated: int = 0


def _has_email_hint(record: EvidenceRecord) -> bool:
    return any(hint.raw_email and hint.raw_email.strip() for hint in record.participant_hints)


def reresolve_record(record: EvidenceRecord, resolver: ParticipantResolver) -> bool:
    """
    Recompute hint verification and linked identities for one record.

    Mutates the record in place.

    Returns:
        True if anything changed
    """
    resolved = resolver.resolve_hints(record.participant_hints)

    hints_changed = any(
        old.is_verified != new.is_verified
        for old, new in zip(record.participant_hints, resolved.hints)
    )
    people_changed = set(resolved.identity_ids) != set(record.linked_people)

    if hints_changed:
        record.participant_hints = resolved.hints
    if people_changed:
        record.link_people(resolved.identity_ids)
    return hints_changed or people_changed


def refresh_participant_resolution(
    store: EvidenceStore,
    conn: sqlite3.Connection,
    resolver: ParticipantResolver,
) -> ReResolutionStats:
    """
    Re-resolve all participant-bearing evidence against the resolver's index.

    The resolver must wrap an index built from the current directory.
    """
    stats = ReResolutionStats()

    for record in store.fetch_all(conn=conn):
        if record.source not in PARTICIPANT_SOURCES or not _has_email_hint(record):
            continue

        stats.examined += 1
        if reresolve_record(record, resolver):
            store.update_derived(record, conn=conn)
            stats.updated += 1

    if stats.updated > 0:
        logger.info(
            f"Re-resolved participants: {stats.updated} of {stats.examined} evidence items changed"
        )
    else:
        logger.debug(f"Re-resolved participants: no changes across {stats.examined} items")
    return stats
