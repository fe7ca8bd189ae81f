"""
Evidence Merger for SAM.

Turns one upstream DTO (plus optional AI analysis) into evidence fields and
idempotently upserts them:
- The dedup key (source_uid) is derived per source
- If a record with that key exists, every derived field is replaced
- Otherwise a new record is inserted in the needsReview state

Triage state and anything else the user owns is never written by a merge.
"""
import logging
import sqlite3
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional, TypeVar

from config.evidence_config import EvidenceConfig
from sam.services.errors import ImportCancelledError
from sam.services.evidence_dtos import (
    CallRecordDTO,
    EmailAnalysisDTO,
    EmailDTO,
    EntityKind,
    EventDTO,
    MessageAnalysisDTO,
    MessageDTO,
    TemporalEventDTO,
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
from sam.services.participant_resolver import ParticipantResolver
from sam.utils.datetime_utils import reference_seconds

logger = logging.getLogger(__name__)

T = TypeVar('T')

EVENTKIT_PREFIX = "eventkit"
IMESSAGE_PREFIX = "imessage"
CALL_PREFIX = "call"


def calendar_source_uid(native_event_id: str) -> str:
    """Dedup key for a calendar event."""
    return f"{EVENTKIT_PREFIX}:{native_event_id}"


def message_source_uid(message: MessageDTO) -> str:
    """Dedup key for a message (guids are globally stable)."""
    return f"{IMESSAGE_PREFIX}:{message.guid}"


def call_source_uid(call: CallRecordDTO) -> str:
    """
    Dedup key for a call.

    Call log row ids get reused across days, so the call's start time
    (seconds since 2001-01-01 UTC) is folded into the key.
    """
    return f"{CALL_PREFIX}:{call.id}:{reference_seconds(call.date)}"


def format_duration(seconds: float) -> str:
    """Format duration in human readable format."""
    if seconds < 60:
        return f"{int(seconds)}s"
    elif seconds < 3600:
        mins = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{mins}m {secs}s"
    else:
        hours = int(seconds // 3600)
        mins = int((seconds % 3600) // 60)
        return f"{hours}h {mins}m"


@dataclass
class MergeCounts:
    """Outcome of an upsert or batch upsert."""
    created: int = 0
    updated: int = 0

    @property
    def total(self) -> int:
        return self.created + self.updated

    def record(self, was_created: bool) -> None:
        if was_created:
            self.created += 1
        else:
            self.updated += 1


@dataclass
class EvidenceFields:
    """The derived (import-owned) fields of one evidence record."""
    source_uid: str
    source: str
    occurred_at: datetime
    title: str
    snippet: str = ""
    ended_at: Optional[datetime] = None
    body_text: Optional[str] = None
    participant_hints: list[ParticipantHint] = field(default_factory=list)
    signals: list[EvidenceSignal] = field(default_factory=list)
    linked_people: list[str] = field(default_factory=list)

    def apply_to(self, record: EvidenceRecord) -> EvidenceRecord:
        """Replace every derived field of an existing record."""
        record.title = self.title
        record.snippet = self.snippet
        record.occurred_at = self.occurred_at
        record.ended_at = self.ended_at
        record.body_text = self.body_text
        record.participant_hints = list(self.participant_hints)
        record.signals = list(self.signals)
        record.link_people(self.linked_people)
        record.redact_private_fields()
        return record

    def to_record(self) -> EvidenceRecord:
        """Build a brand-new record awaiting review."""
        record = EvidenceRecord(
            source=self.source,
            source_uid=self.source_uid,
            state=TriageState.NEEDS_REVIEW.value,
            occurred_at=self.occurred_at,
            title=self.title,
        )
        return self.apply_to(record)


# ============================================================================
# Signals from analysis
# ============================================================================

def _temporal_signals(events: Iterable[TemporalEventDTO]) -> list[EvidenceSignal]:
    return [
        EvidenceSignal(
            kind=SignalKind.LIFE_EVENT.value,
            message=f"{event.description}: {event.date_string}",
            confidence=event.confidence,
        )
        for event in events
    ]


def signals_from_email_analysis(analysis: Optional[EmailAnalysisDTO]) -> list[EvidenceSignal]:
    """Life events, plus financial products named in the email."""
    if analysis is None:
        return []

    signals = _temporal_signals(analysis.temporal_events)
    for entity in analysis.named_entities:
        kind = entity.kind.value if isinstance(entity.kind, EntityKind) else entity.kind
        if kind == EntityKind.FINANCIAL_INSTRUMENT.value:
            signals.append(
                EvidenceSignal(
                    kind=SignalKind.FINANCIAL_EVENT.value,
                    message=f"Product mentioned: {entity.name}",
                    confidence=entity.confidence,
                )
            )
    return signals


def signals_from_message_analysis(analysis: Optional[MessageAnalysisDTO]) -> list[EvidenceSignal]:
    if analysis is None:
        return []
    return _temporal_signals(analysis.temporal_events)


# ============================================================================
# Field builders (one per source)
# ============================================================================

def build_event_fields(event: EventDTO, resolver: ParticipantResolver) -> EvidenceFields:
    """Calendar: title falls back to "Untitled Event"; snippet is location, else notes."""
    resolved = resolver.resolve_event(event)
    return EvidenceFields(
        source_uid=event.source_uid,
        source=EvidenceSource.CALENDAR.value,
        occurred_at=event.start_date,
        ended_at=event.end_date,
        title=event.title or EvidenceConfig.UNTITLED_EVENT,
        snippet=event.location or event.notes or "",
        body_text=event.notes,
        participant_hints=resolved.hints,
        linked_people=resolved.identity_ids,
    )


def build_email_fields(
    email: EmailDTO,
    analysis: Optional[EmailAnalysisDTO],
    resolver: ParticipantResolver,
) -> EvidenceFields:
    """Mail: snippet is the AI summary when present. Body text is never kept."""
    resolved = resolver.resolve_mail(email)
    summary = analysis.summary if analysis else None
    return EvidenceFields(
        source_uid=email.source_uid,
        source=EvidenceSource.MAIL.value,
        occurred_at=email.date,
        title=email.subject or EvidenceConfig.UNTITLED_EMAIL,
        snippet=summary or email.body_snippet or "",
        body_text=None,
        participant_hints=resolved.hints,
        signals=signals_from_email_analysis(analysis),
        linked_people=resolved.identity_ids,
    )


def _message_title(message: MessageDTO, name: Optional[str]) -> str:
    if name:
        return f"Message to {name}" if message.is_from_me else f"Message from {name}"
    return "Sent message" if message.is_from_me else "Received message"


def _message_snippet(message: MessageDTO, analysis: Optional[MessageAnalysisDTO]) -> str:
    if analysis and analysis.summary:
        return analysis.summary
    if message.text and message.text.strip():
        return message.text[:EvidenceConfig.MESSAGE_SNIPPET_LENGTH]
    if message.has_attachment:
        return EvidenceConfig.ATTACHMENT_PLACEHOLDER
    return EvidenceConfig.NO_TEXT_PLACEHOLDER


def build_message_fields(
    message: MessageDTO,
    analysis: Optional[MessageAnalysisDTO],
    resolver: ParticipantResolver,
) -> EvidenceFields:
    """iMessage: title names the resolved identity, never the raw text. Body text is never kept."""
    resolved = resolver.resolve_handle(message.handle_id)
    name = None
    if resolved.identities:
        identity = resolved.identities[0]
        name = identity.display_name or identity.primary_email

    return EvidenceFields(
        source_uid=message_source_uid(message),
        source=EvidenceSource.IMESSAGE.value,
        occurred_at=message.date,
        title=_message_title(message, name),
        snippet=_message_snippet(message, analysis),
        body_text=None,
        participant_hints=resolved.hints,
        signals=signals_from_message_analysis(analysis),
        linked_people=resolved.identity_ids,
    )


def describe_call(call: CallRecordDTO) -> tuple[str, str]:
    """
    Title and snippet for a call, from call metadata alone.

    Returns:
        Tuple of (title, snippet)
    """
    kind = "FaceTime call" if call.is_face_time else "call"

    if call.was_answered:
        direction = "Outgoing" if call.is_outgoing else "Incoming"
        title = f"{direction} {kind}"
        if call.duration and call.duration > 0:
            snippet = f"Duration: {format_duration(call.duration)}"
        else:
            snippet = "Connected"
    elif call.is_outgoing:
        title = f"Unanswered {kind}"
        snippet = f"Outgoing {kind} was not answered"
    else:
        title = f"Missed {kind}"
        snippet = f"Missed incoming {kind}"

    return title, snippet


def build_call_fields(call: CallRecordDTO, resolver: ParticipantResolver) -> EvidenceFields:
    """Phone/FaceTime: no AI involved, no body text."""
    resolved = resolver.resolve_handle(call.address)
    title, snippet = describe_call(call)

    ended_at = None
    if call.was_answered and call.duration and call.duration > 0:
        ended_at = call.date + timedelta(seconds=call.duration)

    return EvidenceFields(
        source_uid=call_source_uid(call),
        source=EvidenceSource.FACETIME.value if call.is_face_time else EvidenceSource.PHONE_CALL.value,
        occurred_at=call.date,
        ended_at=ended_at,
        title=title,
        snippet=snippet,
        participant_hints=resolved.hints,
        linked_people=resolved.identity_ids,
    )


# ============================================================================
# Merge
# ============================================================================

class EvidenceMerger:
    """
    Idempotent upsert of evidence fields into an EvidenceStore.

    All methods run on a caller-supplied connection; the caller decides
    when to commit.
    """

    def __init__(self, store: EvidenceStore, resolver: ParticipantResolver):
        self.store = store
        self.resolver = resolver

    def upsert_fields(self, fields: EvidenceFields, conn: sqlite3.Connection) -> tuple[EvidenceRecord, bool]:
        """
        Insert or replace-on-reimport by source_uid.

        Returns:
            Tuple of (record, was_created)
        """
        existing = self.store.fetch_by_source_uid(fields.source_uid, conn=conn)
        if existing:
            fields.apply_to(existing)
            self.store.update_derived(existing, conn=conn)
            return existing, False

        record = fields.to_record()
        self.store.insert(record, conn=conn)
        return record, True

    def upsert_event(self, event: EventDTO, conn: sqlite3.Connection) -> tuple[EvidenceRecord, bool]:
        return self.upsert_fields(build_event_fields(event, self.resolver), conn)

    def upsert_email(
        self,
        email: EmailDTO,
        analysis: Optional[EmailAnalysisDTO],
        conn: sqlite3.Connection,
    ) -> tuple[EvidenceRecord, bool]:
        return self.upsert_fields(build_email_fields(email, analysis, self.resolver), conn)

    def upsert_message(
        self,
        message: MessageDTO,
        analysis: Optional[MessageAnalysisDTO],
        conn: sqlite3.Connection,
    ) -> tuple[EvidenceRecord, bool]:
        return self.upsert_fields(build_message_fields(message, analysis, self.resolver), conn)

    def upsert_call(self, call: CallRecordDTO, conn: sqlite3.Connection) -> tuple[EvidenceRecord, bool]:
        return self.upsert_fields(build_call_fields(call, self.resolver), conn)

    def merge_batch(
        self,
        items: Iterable[T],
        build: Callable[[T], EvidenceFields],
        conn: sqlite3.Connection,
        label: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> MergeCounts:
        """
        Upsert many items on one connection.

        Cancellation is checked between items only; raising
        ImportCancelledError leaves the caller's transaction to roll back.
        """
        counts = MergeCounts()
        for item in items:
            if cancel_event is not None and cancel_event.is_set():
                raise ImportCancelledError(label, counts.total)
            _, was_created = self.upsert_fields(build(item), conn)
            counts.record(was_created)

        logger.info(f"{label}: {counts.created} created, {counts.updated} updated")
        return counts
