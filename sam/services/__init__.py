"""
SAM Services Package.

Evidence reconciliation and identity resolution.

Example:
    from sam.services import get_evidence_repository

    repository = get_evidence_repository()
    repository.bulk_upsert_calendar(events)

Key service modules:
- canonical: email / phone canonicalization
- identity_directory: read-only accessor for known identities
- identity_index: per-pass lookup sets built from the directory
- participant_resolver: raw participants -> hints + identities
- evidence_store: EvidenceRecord model and SQLite store
- evidence_merger: source UIDs, field construction, idempotent upsert
- orphan_pruner: deletion of evidence whose source vanished
- re_resolver: re-resolution after directory changes
- recent_meeting: most recent unsuperseded meeting lookup
- evidence_repository: public facade over all of the above
"""

from sam.services.errors import (
    EvidenceError,
    ImportCancelledError,
    NotConfiguredError,
    StorageError,
)
from sam.services.evidence_store import (
    EvidenceRecord,
    EvidenceSignal,
    EvidenceSource,
    EvidenceStore,
    ParticipantHint,
    SignalKind,
    TriageState,
)
from sam.services.evidence_repository import (
    EvidenceRepository,
    configure_from_settings,
    get_evidence_repository,
)

__all__ = [
    "EvidenceError",
    "ImportCancelledError",
    "NotConfiguredError",
    "StorageError",
    "EvidenceRecord",
    "EvidenceSignal",
    "EvidenceSource",
    "EvidenceStore",
    "ParticipantHint",
    "SignalKind",
    "TriageState",
    "EvidenceRepository",
    "configure_from_settings",
    "get_evidence_repository",
]
