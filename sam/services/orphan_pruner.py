"""
Orphan pruning for SAM evidence.

Deletes evidence whose backing source item is no longer observable upstream.

Mail imports may skip messages from senders that haven't been triaged yet,
so their absence from the live set says nothing about deletion. Passing
scoped_to_sender_emails restricts deletion to records from those senders.
"""
import logging
import sqlite3
from typing import Iterable, Optional

from sam.services.canonical import canonicalize_email
from sam.services.evidence_store import EvidenceRecord, EvidenceSource, EvidenceStore

logger = logging.getLogger(__name__)


def find_orphans(
    records: Iterable[EvidenceRecord],
    valid_source_uids: set[str],
    source: str = EvidenceSource.CALENDAR.value,
    scoped_to_sender_emails: Optional[Iterable[str]] = None,
) -> list[EvidenceRecord]:
    """
    Select records of the given source whose source_uid is not live.

    Args:
        records: Candidate records (any source)
        valid_source_uids: UIDs currently observable upstream
        source: Only records from this source are eligible
        scoped_to_sender_emails: Mail only. If given, only records whose
            sender is in this set are eligible.

    Returns:
        Records to delete
    """
    source = source.value if isinstance(source, EvidenceSource) else source

    scope = None
    if scoped_to_sender_emails is not None and source == EvidenceSource.MAIL.value:
        scope = {key for key in (canonicalize_email(e) for e in scoped_to_sender_emails) if key}

    orphans = []
    for record in records:
        if record.source != source:
            continue
        if not record.source_uid or record.source_uid in valid_source_uids:
            continue
        if scope is not None and record.sender_email not in scope:
            continue
        orphans.append(record)
    return orphans


def prune_orphans(
    store: EvidenceStore,
    conn: sqlite3.Connection,
    valid_source_uids: Iterable[str],
    source: str = EvidenceSource.CALENDAR.value,
    scoped_to_sender_emails: Optional[Iterable[str]] = None,
) -> int:
    """
    Delete orphaned evidence of one source kind.

    Returns:
        Number of records deleted (0 when there is nothing to do)
    """
    valid = set(valid_source_uids)
    records = store.fetch_all(source=source, conn=conn)
    orphans = find_orphans(records, valid, source, scoped_to_sender_emails)

    for record in orphans:
        store.delete(record.id, conn=conn)

    if orphans:
        label = source.value if isinstance(source, EvidenceSource) else source
        logger.info(f"Pruned {len(orphans)} orphaned {label} evidence items")
    return len(orphans)
