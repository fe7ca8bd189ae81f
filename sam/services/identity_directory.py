"""
Identity Directory accessor for SAM.

The identity directory (contacts / people) is owned by another subsystem.
This module only reads its JSON export. Every fetch re-reads the file so a
resolution pass always sees the authoritative current directory and never
reuses objects cached from an earlier pass.
"""
import json
import logging
import uuid
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional

from config.settings import settings

logger = logging.getLogger(__name__)


@dataclass
class IdentityRecord:
    """
    A known person from the identity directory.

    Read-only from the evidence engine's point of view.
    """

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    display_name: str = ""
    primary_email: Optional[str] = None
    email_aliases: list[str] = field(default_factory=list)
    phone_aliases: list[str] = field(default_factory=list)

    @property
    def all_emails(self) -> list[str]:
        """Primary email followed by aliases (raw, not canonicalized)."""
        emails = [self.primary_email] if self.primary_email else []
        return emails + list(self.email_aliases)

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "IdentityRecord":
        """Create IdentityRecord from dict, ignoring unknown keys."""
        known = {k: data[k] for k in cls.__dataclass_fields__ if k in data}
        return cls(**known)


class IdentityDirectory:
    """
    Read-only view of the identity directory JSON export.

    File format:
        {"me": "<identity id>", "identities": [{...}, ...]}
    A bare list of identities is also accepted. The "me" identity comes from
    the file, falling back to settings.my_identity_id.
    """

    def __init__(self, storage_path: Optional[str] = None, me_id: Optional[str] = None):
        """
        Initialize the directory accessor.

        Args:
            storage_path: Path to the JSON export (default from settings)
            me_id: Override for the self identity id
        """
        self.storage_path = Path(storage_path or settings.identity_directory_path)
        self._me_id = me_id

    def _read(self) -> dict:
        if not self.storage_path.exists():
            logger.info(f"No identity directory at {self.storage_path}, treating as empty")
            return {"identities": []}

        with open(self.storage_path) as f:
            data = json.load(f)

        if isinstance(data, list):
            return {"identities": data}
        return data

    def fetch_all(self) -> list[IdentityRecord]:
        """Fetch every identity record, in directory order."""
        data = self._read()
        return [IdentityRecord.from_dict(item) for item in data.get("identities", [])]

    def fetch_me(self) -> Optional[IdentityRecord]:
        """Fetch the device owner's identity, if one is designated."""
        data = self._read()
        me_id = self._me_id or data.get("me") or settings.my_identity_id
        if not me_id:
            return None
        for item in data.get("identities", []):
            if item.get("id") == me_id:
                return IdentityRecord.from_dict(item)
        logger.warning(f"Self identity {me_id} not found in directory")
        return None


_directory: Optional[IdentityDirectory] = None


def get_identity_directory(storage_path: Optional[str] = None) -> IdentityDirectory:
    """
    Get or create the singleton IdentityDirectory.

    Args:
        storage_path: Path to the JSON export (default from settings)

    Returns:
        IdentityDirectory instance
    """
    global _directory
    if _directory is None:
        _directory = IdentityDirectory(storage_path)
    return _directory
