"""
Identity Index for SAM evidence resolution.

Built once per resolution pass from a full directory snapshot:
- known_emails: canonical primary + alias emails of every record
- me_emails: the self identity's emails, kept apart from known_emails
- per-record phone keys (there is deliberately no global phone index)
"""
import logging
from typing import Iterable, Optional

from sam.services.canonical import canonicalize_email, canonicalize_phone
from sam.services.identity_directory import IdentityDirectory, IdentityRecord

logger = logging.getLogger(__name__)


def _email_keys(record: IdentityRecord) -> set[str]:
    keys = set()
    for email in record.all_emails:
        key = canonicalize_email(email)
        if key:
            keys.add(key)
    return keys


def _phone_keys(record: IdentityRecord) -> set[str]:
    keys = set()
    for phone in record.phone_aliases:
        key = canonicalize_phone(phone)
        if key:
            keys.add(key)
    return keys


class IdentityIndex:
    """Lookup sets over one snapshot of the identity directory."""

    def __init__(self, records: Iterable[IdentityRecord], me: Optional[IdentityRecord] = None):
        self.records: list[IdentityRecord] = list(records)
        self.me = me

        self._emails_by_record: dict[str, set[str]] = {}
        self._phones_by_record: dict[str, set[str]] = {}
        self.known_emails: set[str] = set()

        for record in self.records:
            emails = _email_keys(record)
            self._emails_by_record[record.id] = emails
            self._phones_by_record[record.id] = _phone_keys(record)
            self.known_emails |= emails

        self.me_emails: set[str] = _email_keys(me) if me else set()

    @classmethod
    def empty(cls) -> "IdentityIndex":
        return cls([])

    @classmethod
    def from_directory(cls, directory: IdentityDirectory) -> "IdentityIndex":
        """
        Build an index from the directory's authoritative accessor.

        A directory that cannot be read yields an empty index: evidence is
        still ingested, just unverified and unlinked.
        """
        try:
            records = directory.fetch_all()
            me = directory.fetch_me()
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Identity directory unavailable, resolving with no matches: {e}")
            return cls.empty()

        index = cls(records, me)
        logger.debug(
            f"Built identity index: {len(index.records)} records, "
            f"{len(index.known_emails)} known emails"
        )
        return index

    def is_me_email(self, key: Optional[str]) -> bool:
        return bool(key) and key in self.me_emails

    def is_known_email(self, key: Optional[str]) -> bool:
        return bool(key) and key in self.known_emails

    def get(self, identity_id: str) -> Optional[IdentityRecord]:
        for record in self.records:
            if record.id == identity_id:
                return record
        return None

    def match_by_emails(self, keys: Iterable[Optional[str]]) -> list[IdentityRecord]:
        """
        Find records owning any of the given canonical email keys.

        Args:
            keys: Canonical email keys (None entries are ignored)

        Returns:
            Matching records in directory order, each at most once
        """
        wanted = {k for k in keys if k}
        if not wanted:
            return []
        return [
            record for record in self.records
            if not self._emails_by_record.get(record.id, set()).isdisjoint(wanted)
        ]

    def match_by_phones(self, keys: Iterable[Optional[str]]) -> list[IdentityRecord]:
        """
        Find records with a phone alias matching any of the given phone keys.

        Matching is per record against that record's own aliases.
        """
        wanted = {k for k in keys if k}
        if not wanted:
            return []
        return [
            record for record in self.records
            if not self._phones_by_record.get(record.id, set()).isdisjoint(wanted)
        ]
