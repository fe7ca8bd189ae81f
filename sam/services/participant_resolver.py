"""
Participant Resolver for SAM evidence.

Turns one source's raw participant list into ordered ParticipantHints and
the set of identities they resolve to:
- Calendar: one hint per attendee, organizer flagged or appended
- Mail: sender first (flagged as organizer, meaning "initiator"), then recipients
- Messages / calls: a single handle, matched by email or by phone by its shape

Lookups are best-effort. A failed match is logged and treated as no match so
that resolution can never block ingestion.
"""
import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Iterable, Optional

from config.evidence_config import EvidenceConfig
from sam.services.canonical import (
    canonicalize_email,
    canonicalize_phone,
    is_email_handle,
)
from sam.services.evidence_dtos import AttendeeDTO, EmailDTO, EventDTO
from sam.services.evidence_store import ParticipantHint
from sam.services.identity_directory import IdentityRecord
from sam.services.identity_index import IdentityIndex

logger = logging.getLogger(__name__)


@dataclass
class ResolvedParticipants:
    """Hints in source order plus the identities they matched."""
    hints: list[ParticipantHint] = field(default_factory=list)
    identities: list[IdentityRecord] = field(default_factory=list)

    @property
    def identity_ids(self) -> list[str]:
        return [identity.id for identity in self.identities]


def _display_name(name: Optional[str], email: Optional[str]) -> str:
    """Name, else email, else "Unknown"."""
    if name and name.strip():
        return name.strip()
    if email and email.strip():
        return email.strip()
    return EvidenceConfig.UNKNOWN_PARTICIPANT


class ParticipantResolver:
    """Resolves raw participants against one IdentityIndex snapshot."""

    def __init__(self, index: IdentityIndex):
        self.index = index

    def _safe_match(
        self,
        matcher: Callable[[Iterable[Optional[str]]], list[IdentityRecord]],
        keys: list[Optional[str]],
        kind: str,
    ) -> list[IdentityRecord]:
        try:
            return matcher(keys)
        except Exception as e:
            logger.warning(f"Identity lookup by {kind} failed, treating as unmatched: {e}")
            return []

    def match_emails(self, raw_emails: Iterable[Optional[str]]) -> list[IdentityRecord]:
        keys = [canonicalize_email(email) for email in raw_emails]
        return self._safe_match(self.index.match_by_emails, keys, "email")

    def match_phones(self, raw_phones: Iterable[Optional[str]]) -> list[IdentityRecord]:
        keys = [canonicalize_phone(phone) for phone in raw_phones]
        return self._safe_match(self.index.match_by_phones, keys, "phone")

    def is_verified(self, raw_email: Optional[str], is_current_user: bool = False) -> bool:
        """A participant is verified if it is me or its email is known."""
        key = canonicalize_email(raw_email)
        is_me = is_current_user or self.index.is_me_email(key)
        return is_me or self.index.is_known_email(key)

    def _attendee_hint(self, attendee: AttendeeDTO, is_organizer: bool = False) -> ParticipantHint:
        hint = ParticipantHint(
            display_name=_display_name(attendee.name, attendee.email_address),
            is_organizer=is_organizer,
            is_verified=self.is_verified(attendee.email_address, attendee.is_current_user),
            raw_email=attendee.email_address,
            is_current_user=attendee.is_current_user,
        )
        logger.debug(
            f"Participant '{hint.display_name}': email={hint.canonical_email}, "
            f"current_user={attendee.is_current_user}, verified={hint.is_verified}"
        )
        return hint

    def _identities_for_hints(self, hints: list[ParticipantHint]) -> list[IdentityRecord]:
        return self.match_emails(hint.raw_email for hint in hints)

    def resolve_event(self, event: EventDTO) -> ResolvedParticipants:
        """
        Build hints for a calendar event.

        The organizer is flagged on the attendee hint with the same canonical
        email; if there is none, a separate organizer hint is appended.
        """
        hints = [self._attendee_hint(attendee) for attendee in event.attendees]

        organizer = event.organizer
        if organizer is not None:
            organizer_key = canonicalize_email(organizer.email_address)
            match_index = None
            if organizer_key:
                for i, hint in enumerate(hints):
                    if hint.canonical_email == organizer_key:
                        match_index = i
                        break

            if match_index is not None:
                hints[match_index].is_organizer = True
            else:
                hints.append(self._attendee_hint(organizer, is_organizer=True))

        return ResolvedParticipants(hints=hints, identities=self._identities_for_hints(hints))

    def resolve_mail(self, email: EmailDTO) -> ResolvedParticipants:
        """
        Build hints for an email.

        The sender is always flagged as organizer; for mail the flag only
        means "initiator".
        """
        sender_email = email.sender_email or None
        hints = [
            ParticipantHint(
                display_name=_display_name(email.sender_name, sender_email),
                is_organizer=True,
                is_verified=self.is_verified(sender_email),
                raw_email=sender_email,
            )
        ]

        for recipient in email.recipient_emails:
            hints.append(
                ParticipantHint(
                    display_name=_display_name(None, recipient),
                    is_organizer=False,
                    is_verified=self.is_verified(recipient),
                    raw_email=recipient or None,
                )
            )

        return ResolvedParticipants(hints=hints, identities=self._identities_for_hints(hints))

    def resolve_handle(self, handle: Optional[str]) -> ResolvedParticipants:
        """
        Resolve a message or call handle.

        Email-shaped handles match by email, anything else by phone. The
        single hint carries raw_email only for email handles.
        """
        if is_email_handle(handle):
            identities = self.match_emails([handle])
            key = canonicalize_email(handle)
            verified = bool(identities) or self.index.is_me_email(key) or self.index.is_known_email(key)
            raw_email = handle.strip()
        else:
            identities = self.match_phones([handle])
            verified = bool(identities)
            raw_email = None

        name = identities[0].display_name if identities else None
        hint = ParticipantHint(
            display_name=_display_name(name, handle),
            is_organizer=False,
            is_verified=verified,
            raw_email=raw_email,
        )
        return ResolvedParticipants(hints=[hint], identities=identities)

    def resolve_hints(self, hints: list[ParticipantHint]) -> ResolvedParticipants:
        """
        Re-verify existing hints against the current index.

        Returns copies; display names, organizer and current-user flags are
        kept. Hints without an email keep their previous verification.
        """
        refreshed = []
        for hint in hints:
            if hint.raw_email and hint.raw_email.strip():
                verified = self.is_verified(hint.raw_email, hint.is_current_user)
                refreshed.append(replace(hint, is_verified=verified))
            else:
                refreshed.append(replace(hint))
        return ResolvedParticipants(hints=refreshed, identities=self._identities_for_hints(refreshed))
