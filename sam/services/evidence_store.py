"""
Evidence Store for SAM.

Stores reconciled evidence records: one record per observed interaction
(calendar event, email, message, call, note), keyed by a stable source UID
and linked to the identities that took part in it.

Storage is SQLite. Participant hints and signals are JSON columns that are
always rewritten wholesale; linked identities live in a join table and are
rewritten by explicit delete-then-insert.
"""
import json
import logging
import sqlite3
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Iterator, Optional

from sam.services.canonical import canonicalize_email
from sam.services.errors import StorageError
from sam.utils.datetime_utils import make_aware as _make_aware, to_storage, from_storage
from sam.utils.db_paths import get_evidence_db_path

logger = logging.getLogger(__name__)


class EvidenceSource(str, Enum):
    """Where a piece of evidence came from."""
    CALENDAR = "calendar"
    MAIL = "mail"
    IMESSAGE = "iMessage"
    PHONE_CALL = "phoneCall"
    FACETIME = "faceTime"
    CONTACTS = "contacts"
    NOTE = "note"
    MANUAL = "manual"


class TriageState(str, Enum):
    """Review state, owned by the user rather than the importer."""
    NEEDS_REVIEW = "needsReview"
    DONE = "done"


class SignalKind(str, Enum):
    """Kinds of deterministic signal attached to evidence."""
    RELATIONSHIP_CHANGE = "Relationship Change"
    FINANCIAL_EVENT = "Financial Event"
    LIFE_EVENT = "Life Event"
    CONTACT_FREQUENCY = "Contact Frequency"
    COMPLIANCE_RISK = "Compliance Risk"
    OPPORTUNITY = "Opportunity"


# Raw body text is never stored for these sources
PRIVATE_BODY_SOURCES = {EvidenceSource.MAIL.value, EvidenceSource.IMESSAGE.value}

# Sources whose records carry participant hints
PARTICIPANT_SOURCES = {
    EvidenceSource.CALENDAR.value,
    EvidenceSource.MAIL.value,
    EvidenceSource.IMESSAGE.value,
    EvidenceSource.PHONE_CALL.value,
    EvidenceSource.FACETIME.value,
}


def _value(item) -> str:
    return item.value if isinstance(item, Enum) else item


@dataclass
class ParticipantHint:
    """One participant as observed in the source, in source order."""
    display_name: str
    is_organizer: bool = False
    is_verified: bool = False  # Matched a known identity (or is me)
    raw_email: Optional[str] = None
    is_current_user: bool = False  # Source flagged this participant as the device owner

    @property
    def canonical_email(self) -> Optional[str]:
        return canonicalize_email(self.raw_email)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ParticipantHint":
        return cls(
            display_name=data.get("display_name") or "",
            is_organizer=bool(data.get("is_organizer")),
            is_verified=bool(data.get("is_verified")),
            raw_email=data.get("raw_email"),
            is_current_user=bool(data.get("is_current_user")),
        )


@dataclass
class EvidenceSignal:
    """A deterministic signal extracted from evidence (or its analysis)."""
    kind: str
    message: str
    confidence: float = 0.0

    def __post_init__(self):
        self.kind = _value(self.kind)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "EvidenceSignal":
        return cls(
            kind=data.get("kind", ""),
            message=data.get("message", ""),
            confidence=float(data.get("confidence") or 0.0),
        )


@dataclass
class EvidenceRecord:
    """
    A single reconciled interaction.

    Derived fields (title, snippet, body_text, dates, hints, signals,
    linked_people) are rewritten by every import of the same source_uid.
    state and created_at are never touched by imports.
    """

    source: str
    occurred_at: datetime
    title: str
    snippet: str = ""
    source_uid: Optional[str] = None  # Sole dedup key, e.g. "imessage:<guid>"

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: str = TriageState.NEEDS_REVIEW.value
    ended_at: Optional[datetime] = None
    body_text: Optional[str] = None

    participant_hints: list[ParticipantHint] = field(default_factory=list)
    signals: list[EvidenceSignal] = field(default_factory=list)
    linked_people: list[str] = field(default_factory=list)  # Identity ids

    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        self.source = _value(self.source)
        self.state = _value(self.state)
        self.occurred_at = _make_aware(self.occurred_at)
        self.ended_at = _make_aware(self.ended_at)
        self.created_at = _make_aware(self.created_at)
        self.redact_private_fields()

    @property
    def is_private_source(self) -> bool:
        return self.source in PRIVATE_BODY_SOURCES

    def redact_private_fields(self) -> None:
        """Drop raw body text for mail and iMessage, whatever the caller supplied."""
        if self.is_private_source:
            self.body_text = None

    def link_people(self, identity_ids: Iterable[str]) -> None:
        """
        Replace linked identities by clearing and appending in place.

        Anyone holding a reference to linked_people sees the new contents.
        """
        self.linked_people.clear()
        for identity_id in identity_ids:
            if identity_id not in self.linked_people:
                self.linked_people.append(identity_id)

    @property
    def sender_email(self) -> Optional[str]:
        """Canonical email of the initiating participant (mail sender)."""
        for hint in self.participant_hints:
            if hint.is_organizer:
                return hint.canonical_email
        return None

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization."""
        return {
            "id": self.id,
            "state": self.state,
            "source_uid": self.source_uid,
            "source": self.source,
            "occurred_at": self.occurred_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "title": self.title,
            "snippet": self.snippet,
            "body_text": self.body_text,
            "participant_hints": [h.to_dict() for h in self.participant_hints],
            "signals": [s.to_dict() for s in self.signals],
            "linked_people": list(self.linked_people),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row, linked_people: Optional[list[str]] = None) -> "EvidenceRecord":
        """Create EvidenceRecord from a database row."""
        hints = json.loads(row["participant_hints"]) if row["participant_hints"] else []
        signals = json.loads(row["signals"]) if row["signals"] else []
        return cls(
            id=row["id"],
            state=row["state"],
            source_uid=row["source_uid"],
            source=row["source"],
            occurred_at=from_storage(row["occurred_at"]),
            ended_at=from_storage(row["ended_at"]),
            title=row["title"],
            snippet=row["snippet"] or "",
            body_text=row["body_text"],
            participant_hints=[ParticipantHint.from_dict(h) for h in hints],
            signals=[EvidenceSignal.from_dict(s) for s in signals],
            linked_people=list(linked_people or []),
            created_at=from_storage(row["created_at"]) or datetime.now(timezone.utc),
        )


class EvidenceStore:
    """
    SQLite-backed evidence storage.

    Every method accepts an optional connection. Without one, the call runs
    in its own short transaction; with one, the caller owns the commit (see
    transaction()), which is how batch imports commit exactly once.
    """

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize evidence store.

        Args:
            db_path: Path to SQLite database (default from settings)
        """
        self.db_path = db_path or get_evidence_db_path()
        self._init_db()

    def _init_db(self):
        """Create database tables if they don't exist."""
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise StorageError("initialize", e) from e
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS evidence (
                    id TEXT PRIMARY KEY,
                    state TEXT NOT NULL DEFAULT 'needsReview',
                    source_uid TEXT UNIQUE,
                    source TEXT NOT NULL,
                    occurred_at TIMESTAMP NOT NULL,
                    ended_at TIMESTAMP,
                    title TEXT NOT NULL,
                    snippet TEXT,
                    body_text TEXT,
                    participant_hints TEXT,
                    signals TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS evidence_people (
                    evidence_id TEXT NOT NULL REFERENCES evidence(id) ON DELETE CASCADE,
                    identity_id TEXT NOT NULL,
                    position INTEGER NOT NULL,
                    PRIMARY KEY (evidence_id, identity_id)
                )
            """
            )

            # Index for newest-first listing
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_evidence_occurred
                ON evidence(occurred_at DESC)
            """
            )

            # Index for per-source pruning
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_evidence_source
                ON evidence(source)
            """
            )

            # Index for per-person lookups
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_evidence_people_identity
                ON evidence_people(identity_id)
            """
            )

            conn.commit()
            logger.info(f"Initialized evidence database at {self.db_path}")
        except sqlite3.Error as e:
            raise StorageError("initialize", e) from e
        finally:
            conn.close()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def transaction(self, commit: bool = True) -> Iterator[sqlite3.Connection]:
        """
        Open a connection that commits once when the block exits cleanly.

        Any exception (including cancellation) rolls back the whole block.
        With commit=False the block always rolls back (dry runs).
        """
        try:
            conn = self._get_connection()
        except sqlite3.Error as e:
            raise StorageError("connect", e) from e
        try:
            yield conn
            if commit:
                conn.commit()
            else:
                conn.rollback()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError("transaction", e) from e
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def _connection(self, conn: Optional[sqlite3.Connection], operation: str) -> Iterator[sqlite3.Connection]:
        if conn is not None:
            try:
                yield conn
            except sqlite3.Error as e:
                raise StorageError(operation, e) from e
            return

        with self.transaction() as own:
            try:
                yield own
            except sqlite3.Error as e:
                raise StorageError(operation, e) from e

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _load_links(self, conn: sqlite3.Connection, evidence_ids: list[str]) -> dict[str, list[str]]:
        links: dict[str, list[str]] = {evidence_id: [] for evidence_id in evidence_ids}
        if not evidence_ids:
            return links

        # Chunk to stay under SQLite's bound-parameter limit
        for start in range(0, len(evidence_ids), 500):
            chunk = evidence_ids[start:start + 500]
            placeholders = ",".join("?" * len(chunk))
            cursor = conn.execute(
                f"""
                SELECT evidence_id, identity_id FROM evidence_people
                WHERE evidence_id IN ({placeholders})
                ORDER BY evidence_id, position
                """,
                chunk,
            )
            for row in cursor.fetchall():
                links[row["evidence_id"]].append(row["identity_id"])
        return links

    def _records_from_rows(self, conn: sqlite3.Connection, rows: list[sqlite3.Row]) -> list[EvidenceRecord]:
        links = self._load_links(conn, [row["id"] for row in rows])
        return [EvidenceRecord.from_row(row, links.get(row["id"])) for row in rows]

    def fetch_all(
        self,
        state: Optional[str] = None,
        source: Optional[str] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[EvidenceRecord]:
        """
        Fetch evidence, newest occurrence first.

        Args:
            state: Only records in this triage state
            source: Only records from this source
            conn: Connection to run on (default: own transaction)
        """
        clauses = []
        params: list = []
        if state is not None:
            clauses.append("state = ?")
            params.append(_value(state))
        if source is not None:
            clauses.append("source = ?")
            params.append(_value(source))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        with self._connection(conn, "fetch") as c:
            cursor = c.execute(
                f"SELECT * FROM evidence {where} ORDER BY occurred_at DESC, created_at DESC",
                params,
            )
            return self._records_from_rows(c, cursor.fetchall())

    def fetch_by_id(self, evidence_id: str, conn: Optional[sqlite3.Connection] = None) -> Optional[EvidenceRecord]:
        """Get evidence by ID."""
        with self._connection(conn, "fetch") as c:
            row = c.execute("SELECT * FROM evidence WHERE id = ?", (evidence_id,)).fetchone()
            if not row:
                return None
            return self._records_from_rows(c, [row])[0]

    def fetch_by_source_uid(self, source_uid: str, conn: Optional[sqlite3.Connection] = None) -> Optional[EvidenceRecord]:
        """Get evidence by its dedup key."""
        with self._connection(conn, "fetch") as c:
            row = c.execute("SELECT * FROM evidence WHERE source_uid = ?", (source_uid,)).fetchone()
            if not row:
                return None
            return self._records_from_rows(c, [row])[0]

    def fetch_for_identity(
        self,
        identity_id: str,
        source: Optional[str] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[EvidenceRecord]:
        """Get evidence linked to an identity, newest occurrence first."""
        params: list = [identity_id]
        source_clause = ""
        if source is not None:
            source_clause = "AND e.source = ?"
            params.append(_value(source))

        with self._connection(conn, "fetch") as c:
            cursor = c.execute(
                f"""
                SELECT e.* FROM evidence e
                JOIN evidence_people p ON p.evidence_id = e.id
                WHERE p.identity_id = ? {source_clause}
                ORDER BY e.occurred_at DESC, e.created_at DESC
                """,
                params,
            )
            return self._records_from_rows(c, cursor.fetchall())

    def count(self, conn: Optional[sqlite3.Connection] = None) -> int:
        """Get total evidence count."""
        with self._connection(conn, "count") as c:
            return c.execute("SELECT COUNT(*) FROM evidence").fetchone()[0]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _write_links(self, conn: sqlite3.Connection, record: EvidenceRecord) -> None:
        conn.execute("DELETE FROM evidence_people WHERE evidence_id = ?", (record.id,))
        conn.executemany(
            "INSERT INTO evidence_people (evidence_id, identity_id, position) VALUES (?, ?, ?)",
            [(record.id, identity_id, position) for position, identity_id in enumerate(record.linked_people)],
        )

    def insert(self, record: EvidenceRecord, conn: Optional[sqlite3.Connection] = None) -> EvidenceRecord:
        """Insert a new evidence record."""
        record.redact_private_fields()
        with self._connection(conn, "insert") as c:
            c.execute(
                """
                INSERT INTO evidence
                (id, state, source_uid, source, occurred_at, ended_at, title, snippet,
                 body_text, participant_hints, signals, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    record.id,
                    record.state,
                    record.source_uid,
                    record.source,
                    to_storage(record.occurred_at),
                    to_storage(record.ended_at),
                    record.title,
                    record.snippet,
                    record.body_text,
                    json.dumps([h.to_dict() for h in record.participant_hints]),
                    json.dumps([s.to_dict() for s in record.signals]),
                    to_storage(record.created_at),
                ),
            )
            self._write_links(c, record)
        return record

    def update_derived(self, record: EvidenceRecord, conn: Optional[sqlite3.Connection] = None) -> EvidenceRecord:
        """
        Persist the import-derived fields of an existing record.

        state, source_uid, source and created_at are not written.
        """
        record.redact_private_fields()
        with self._connection(conn, "update") as c:
            c.execute(
                """
                UPDATE evidence SET
                    occurred_at = ?, ended_at = ?, title = ?, snippet = ?,
                    body_text = ?, participant_hints = ?, signals = ?
                WHERE id = ?
            """,
                (
                    to_storage(record.occurred_at),
                    to_storage(record.ended_at),
                    record.title,
                    record.snippet,
                    record.body_text,
                    json.dumps([h.to_dict() for h in record.participant_hints]),
                    json.dumps([s.to_dict() for s in record.signals]),
                    record.id,
                ),
            )
            self._write_links(c, record)
        return record

    def update_state(self, evidence_id: str, state: str, conn: Optional[sqlite3.Connection] = None) -> bool:
        """Set the triage state. Returns False if the record doesn't exist."""
        with self._connection(conn, "update state") as c:
            cursor = c.execute(
                "UPDATE evidence SET state = ? WHERE id = ?",
                (_value(state), evidence_id),
            )
            return cursor.rowcount > 0

    def delete(self, evidence_id: str, conn: Optional[sqlite3.Connection] = None) -> bool:
        """Delete a record and its identity links."""
        with self._connection(conn, "delete") as c:
            c.execute("DELETE FROM evidence_people WHERE evidence_id = ?", (evidence_id,))
            cursor = c.execute("DELETE FROM evidence WHERE id = ?", (evidence_id,))
            return cursor.rowcount > 0

    def delete_all(self, conn: Optional[sqlite3.Connection] = None) -> int:
        """Delete every record. Returns count deleted."""
        with self._connection(conn, "delete all") as c:
            c.execute("DELETE FROM evidence_people")
            cursor = c.execute("DELETE FROM evidence")
            return cursor.rowcount
