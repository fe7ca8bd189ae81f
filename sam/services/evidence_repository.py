"""
Evidence Repository for SAM.

Public entry point of the evidence engine. Wires the store, the identity
directory and the resolution/merge/prune services together:

- Reads: fetch_all / fetch_needs_review / fetch_done / fetch / fetch_by_source_uid
- Imports: create, upsert_*, bulk_upsert_* (one commit per call)
- Maintenance: prune_orphans, refresh_participant_resolution, delete_all
- Lookup: find_recent_meeting

Every mutation runs under a single lock, so imports, prunes and
re-resolution never interleave. Each entry point builds a fresh
IdentityIndex from the directory it was configured with.
"""
import logging
import threading
from datetime import datetime, timedelta
from typing import Iterable, Optional

from config.settings import settings
from sam.services.errors import NotConfiguredError
from sam.services.evidence_dtos import (
    CallRecordDTO,
    EmailAnalysisDTO,
    EmailDTO,
    EventDTO,
    MessageAnalysisDTO,
    MessageDTO,
)
from sam.services.evidence_merger import (
    EvidenceFields,
    EvidenceMerger,
    MergeCounts,
    build_call_fields,
    build_email_fields,
    build_event_fields,
    build_message_fields,
)
from sam.services.evidence_store import (
    EvidenceRecord,
    EvidenceSource,
    EvidenceStore,
    ParticipantHint,
    TriageState,
)
from sam.services.identity_directory import IdentityDirectory, get_identity_directory
from sam.services.identity_index import IdentityIndex
from sam.services.orphan_pruner import prune_orphans as _prune_orphans
from sam.services.participant_resolver import ParticipantResolver
from sam.services.re_resolver import ReResolutionStats, refresh_participant_resolution as _refresh
from sam.services.recent_meeting import find_recent_meeting as _find_recent_meeting

logger = logging.getLogger(__name__)


class EvidenceRepository:
    """Evidence CRUD, merge and resolution over one store and one directory."""

    def __init__(self):
        self._store: Optional[EvidenceStore] = None
        self._directory: Optional[IdentityDirectory] = None
        self._lock = threading.RLock()

    def configure(self, store: EvidenceStore, directory: IdentityDirectory) -> None:
        """
        Configure the repository.

        Must be called once at startup before any operation.
        """
        self._store = store
        self._directory = directory
        logger.info(f"Evidence repository configured with {store.db_path}")

    @property
    def is_configured(self) -> bool:
        return self._store is not None and self._directory is not None

    def _require_store(self) -> EvidenceStore:
        if self._store is None or self._directory is None:
            raise NotConfiguredError()
        return self._store

    def _resolver(self) -> ParticipantResolver:
        # Re-read the directory for every pass; never reuse an older snapshot
        return ParticipantResolver(IdentityIndex.from_directory(self._directory))

    # ------------------------------------------------------------------
    # Reads (newest occurrence first)
    # ------------------------------------------------------------------

    def fetch_all(self) -> list[EvidenceRecord]:
        """Fetch all evidence items (all states)."""
        return self._require_store().fetch_all()

    def fetch_needs_review(self) -> list[EvidenceRecord]:
        """Fetch evidence items waiting for review."""
        return self._require_store().fetch_all(state=TriageState.NEEDS_REVIEW)

    def fetch_done(self) -> list[EvidenceRecord]:
        """Fetch reviewed evidence items."""
        return self._require_store().fetch_all(state=TriageState.DONE)

    def fetch(self, evidence_id: str) -> Optional[EvidenceRecord]:
        """Fetch a single evidence item by id."""
        return self._require_store().fetch_by_id(evidence_id)

    def fetch_by_source_uid(self, source_uid: str) -> Optional[EvidenceRecord]:
        """Fetch the evidence item for a dedup key."""
        return self._require_store().fetch_by_source_uid(source_uid)

    # ------------------------------------------------------------------
    # Imports
    # ------------------------------------------------------------------

    def create(
        self,
        source_uid: str,
        source: str,
        occurred_at: datetime,
        title: str,
        snippet: str = "",
        body_text: Optional[str] = None,
        ended_at: Optional[datetime] = None,
        participant_hints: Optional[list[ParticipantHint]] = None,
        linked_people: Optional[list[str]] = None,
    ) -> EvidenceRecord:
        """
        Create or update evidence from any source (notes, manual entries...).

        Idempotent on source_uid like the typed upserts.
        """
        store = self._require_store()
        fields = EvidenceFields(
            source_uid=source_uid,
            source=source.value if isinstance(source, EvidenceSource) else source,
            occurred_at=occurred_at,
            ended_at=ended_at,
            title=title,
            snippet=snippet,
            body_text=body_text,
            participant_hints=list(participant_hints or []),
            linked_people=list(linked_people or []),
        )
        with self._lock, store.transaction() as conn:
            # Caller supplies hints and links directly; nothing to resolve
            merger = EvidenceMerger(store, ParticipantResolver(IdentityIndex.empty()))
            record, _ = merger.upsert_fields(fields, conn)
        return record

    def _upsert_one(self, build) -> tuple[EvidenceRecord, bool]:
        store = self._require_store()
        with self._lock, store.transaction() as conn:
            merger = EvidenceMerger(store, self._resolver())
            return merger.upsert_fields(build(merger.resolver), conn)

    def upsert_event(self, event: EventDTO) -> tuple[EvidenceRecord, bool]:
        """Upsert one calendar event. Returns (record, was_created)."""
        return self._upsert_one(lambda resolver: build_event_fields(event, resolver))

    def upsert_email(
        self, email: EmailDTO, analysis: Optional[EmailAnalysisDTO] = None
    ) -> tuple[EvidenceRecord, bool]:
        """Upsert one email. Returns (record, was_created)."""
        return self._upsert_one(lambda resolver: build_email_fields(email, analysis, resolver))

    def upsert_message(
        self, message: MessageDTO, analysis: Optional[MessageAnalysisDTO] = None
    ) -> tuple[EvidenceRecord, bool]:
        """Upsert one message. Returns (record, was_created)."""
        return self._upsert_one(lambda resolver: build_message_fields(message, analysis, resolver))

    def upsert_call(self, call: CallRecordDTO) -> tuple[EvidenceRecord, bool]:
        """Upsert one call record. Returns (record, was_created)."""
        return self._upsert_one(lambda resolver: build_call_fields(call, resolver))

    def _bulk(self, items, build, label: str, cancel_event: Optional[threading.Event]) -> MergeCounts:
        store = self._require_store()
        with self._lock, store.transaction() as conn:
            merger = EvidenceMerger(store, self._resolver())
            return merger.merge_batch(
                items,
                lambda item: build(item, merger.resolver),
                conn,
                label,
                cancel_event=cancel_event,
            )

    def bulk_upsert_calendar(
        self, events: Iterable[EventDTO], cancel_event: Optional[threading.Event] = None
    ) -> MergeCounts:
        """Upsert many calendar events, committing once."""
        return self._bulk(
            events,
            lambda event, resolver: build_event_fields(event, resolver),
            "Calendar bulk upsert",
            cancel_event,
        )

    def bulk_upsert_mail(
        self,
        emails: Iterable[tuple[EmailDTO, Optional[EmailAnalysisDTO]]],
        cancel_event: Optional[threading.Event] = None,
    ) -> MergeCounts:
        """Upsert many (email, analysis) pairs, committing once."""
        return self._bulk(
            emails,
            lambda pair, resolver: build_email_fields(pair[0], pair[1], resolver),
            "Mail bulk upsert",
            cancel_event,
        )

    def bulk_upsert_messages(
        self,
        messages: Iterable[tuple[MessageDTO, Optional[MessageAnalysisDTO]]],
        cancel_event: Optional[threading.Event] = None,
    ) -> MergeCounts:
        """Upsert many (message, analysis) pairs, committing once."""
        return self._bulk(
            messages,
            lambda pair, resolver: build_message_fields(pair[0], pair[1], resolver),
            "Message bulk upsert",
            cancel_event,
        )

    def bulk_upsert_calls(
        self, calls: Iterable[CallRecordDTO], cancel_event: Optional[threading.Event] = None
    ) -> MergeCounts:
        """Upsert many call records, committing once."""
        return self._bulk(
            calls,
            lambda call, resolver: build_call_fields(call, resolver),
            "Call bulk upsert",
            cancel_event,
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def prune_orphans(
        self,
        valid_source_uids: Iterable[str],
        source: str = EvidenceSource.CALENDAR.value,
        scoped_to_sender_emails: Optional[Iterable[str]] = None,
        dry_run: bool = False,
    ) -> int:
        """
        Delete evidence of one source whose source_uid is no longer live.

        With dry_run=True the count is computed and the deletions rolled back.
        """
        store = self._require_store()
        with self._lock, store.transaction(commit=not dry_run) as conn:
            return _prune_orphans(store, conn, valid_source_uids, source, scoped_to_sender_emails)

    def prune_mail_orphans(
        self,
        valid_source_uids: Iterable[str],
        scoped_to_sender_emails: Optional[Iterable[str]] = None,
    ) -> int:
        """Mail pruning, optionally limited to already-recognized senders."""
        return self.prune_orphans(valid_source_uids, EvidenceSource.MAIL.value, scoped_to_sender_emails)

    def refresh_participant_resolution(self, dry_run: bool = False) -> ReResolutionStats:
        """Re-resolve all evidence after the identity directory changed."""
        store = self._require_store()
        with self._lock, store.transaction(commit=not dry_run) as conn:
            return _refresh(store, conn, self._resolver())

    def find_recent_meeting(
        self,
        person_id: str,
        max_window: Optional[timedelta] = None,
        now: Optional[datetime] = None,
    ) -> Optional[EvidenceRecord]:
        """Most recent finished, unsuperseded meeting with a person."""
        store = self._require_store()
        if max_window is None:
            max_window = timedelta(minutes=settings.recent_meeting_window_minutes)
        meetings = store.fetch_for_identity(person_id, source=EvidenceSource.CALENDAR)
        return _find_recent_meeting(
            meetings,
            person_id,
            now=now,
            max_window=max_window,
            default_duration=timedelta(minutes=settings.default_meeting_minutes),
        )

    # ------------------------------------------------------------------
    # Triage state
    # ------------------------------------------------------------------

    def mark_as_reviewed(self, evidence_id: str) -> bool:
        """Mark evidence as reviewed. Returns False if it doesn't exist."""
        store = self._require_store()
        with self._lock:
            return store.update_state(evidence_id, TriageState.DONE)

    def mark_as_needs_review(self, evidence_id: str) -> bool:
        """Move evidence back to the review queue. Returns False if it doesn't exist."""
        store = self._require_store()
        with self._lock:
            return store.update_state(evidence_id, TriageState.NEEDS_REVIEW)

    # ------------------------------------------------------------------
    # Deletes
    # ------------------------------------------------------------------

    def delete(self, evidence_id: str) -> bool:
        """Delete a single evidence item."""
        store = self._require_store()
        with self._lock:
            return store.delete(evidence_id)

    def delete_all(self) -> int:
        """Delete all evidence items (use with caution)."""
        store = self._require_store()
        with self._lock:
            deleted = store.delete_all()
        logger.warning(f"Deleted all evidence items: {deleted}")
        return deleted


_repository: Optional[EvidenceRepository] = None


def get_evidence_repository() -> EvidenceRepository:
    """
    Get the singleton EvidenceRepository.

    The repository starts unconfigured; call configure_from_settings() (or
    configure()) at startup.
    """
    global _repository
    if _repository is None:
        _repository = EvidenceRepository()
    return _repository


def configure_from_settings() -> EvidenceRepository:
    """Configure the singleton with the SQLite store and directory from settings."""
    repository = get_evidence_repository()
    repository.configure(EvidenceStore(), get_identity_directory())
    return repository
