"""
Data transfer objects consumed by the evidence engine.

Platform integrations (calendar, mail, messages, call history) and the
AI analysis service emit these; the engine reads them and never mutates them.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class AttendeeDTO:
    """A calendar attendee or organizer."""
    name: Optional[str] = None
    email_address: Optional[str] = None
    is_current_user: bool = False


@dataclass(frozen=True)
class EventDTO:
    """
    A calendar event.

    source_uid is supplied by the calendar integration, normally built
    with calendar_source_uid() ("eventkit:<native id>").
    """
    source_uid: str
    title: str
    start_date: datetime
    end_date: Optional[datetime] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    organizer: Optional[AttendeeDTO] = None
    attendees: list[AttendeeDTO] = field(default_factory=list)
    participant_emails: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class EmailDTO:
    """An email message. body_snippet is an excerpt, never the full body."""
    source_uid: str
    subject: str
    sender_email: str
    date: datetime
    sender_name: Optional[str] = None
    recipient_emails: list[str] = field(default_factory=list)
    body_snippet: str = ""

    @property
    def all_participant_emails(self) -> list[str]:
        return [self.sender_email] + list(self.recipient_emails)


@dataclass(frozen=True)
class TemporalEventDTO:
    """A dated life event mentioned in a conversation."""
    description: str
    date_string: str
    confidence: float = 0.0


class EntityKind(str, Enum):
    PERSON = "person"
    ORGANIZATION = "organization"
    FINANCIAL_INSTRUMENT = "financialInstrument"
    PRODUCT = "product"
    OTHER = "other"


@dataclass(frozen=True)
class NamedEntityDTO:
    """An entity the analysis service found in an email."""
    name: str
    kind: str = EntityKind.OTHER.value
    confidence: float = 0.0


@dataclass(frozen=True)
class EmailAnalysisDTO:
    """AI analysis of an email, consumed verbatim."""
    summary: Optional[str] = None
    temporal_events: list[TemporalEventDTO] = field(default_factory=list)
    named_entities: list[NamedEntityDTO] = field(default_factory=list)


@dataclass(frozen=True)
class MessageDTO:
    """An iMessage/SMS message. handle_id is a phone number or an email."""
    guid: str
    handle_id: str
    date: datetime
    is_from_me: bool = False
    text: Optional[str] = None
    has_attachment: bool = False


@dataclass(frozen=True)
class MessageAnalysisDTO:
    """AI analysis of a message thread, consumed verbatim."""
    summary: Optional[str] = None
    temporal_events: list[TemporalEventDTO] = field(default_factory=list)


class CallType(str, Enum):
    PHONE = "phone"
    FACETIME_VIDEO = "faceTimeVideo"
    FACETIME_AUDIO = "faceTimeAudio"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class CallRecordDTO:
    """
    A call history entry.

    id is the call log's native row id, which is not stable across days.
    duration is in seconds.
    """
    id: int
    address: str
    date: datetime
    duration: float = 0.0
    was_answered: bool = False
    is_outgoing: bool = False
    call_type: str = CallType.PHONE.value

    @property
    def is_face_time(self) -> bool:
        kind = self.call_type.value if isinstance(self.call_type, Enum) else self.call_type
        return kind in (CallType.FACETIME_VIDEO.value, CallType.FACETIME_AUDIO.value)
