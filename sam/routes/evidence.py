"""
Evidence API routes for SAM.

Read endpoints for the inbox UI, triage state toggles, and a manual trigger
for re-resolution after the identity directory changes.
"""
import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from sam.services.errors import NotConfiguredError
from sam.services.evidence_repository import get_evidence_repository
from sam.services.evidence_store import EvidenceRecord, TriageState

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/evidence", tags=["evidence"])


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------

class ParticipantHintResponse(BaseModel):
    display_name: str
    is_organizer: bool
    is_verified: bool
    raw_email: Optional[str] = None
    is_current_user: bool = False


class SignalResponse(BaseModel):
    kind: str
    message: str
    confidence: float


class EvidenceResponse(BaseModel):
    id: str
    state: str
    source_uid: Optional[str]
    source: str
    occurred_at: str
    ended_at: Optional[str]
    title: str
    snippet: str
    participant_hints: list[ParticipantHintResponse]
    signals: list[SignalResponse]
    linked_people: list[str]

    @classmethod
    def from_record(cls, r: EvidenceRecord) -> "EvidenceResponse":
        # body_text is deliberately not exposed
        return cls(
            id=r.id,
            state=r.state,
            source_uid=r.source_uid,
            source=r.source,
            occurred_at=r.occurred_at.isoformat(),
            ended_at=r.ended_at.isoformat() if r.ended_at else None,
            title=r.title,
            snippet=r.snippet,
            participant_hints=[ParticipantHintResponse(**h.to_dict()) for h in r.participant_hints],
            signals=[SignalResponse(**s.to_dict()) for s in r.signals],
            linked_people=list(r.linked_people),
        )


class EvidenceListResponse(BaseModel):
    items: list[EvidenceResponse]
    total: int


class RefreshResponse(BaseModel):
    examined: int
    updated: int


def _not_configured(e: NotConfiguredError) -> HTTPException:
    logger.error(str(e))
    return HTTPException(status_code=503, detail="Evidence store not configured")


# ---------------------------------------------------------------------------
# Routes (static paths MUST come before {evidence_id} to avoid capture)
# ---------------------------------------------------------------------------

@router.get("", response_model=EvidenceListResponse)
async def list_evidence(state: Optional[str] = Query(default=None, description="'needsReview' or 'done'")):
    """List evidence, newest first."""
    repository = get_evidence_repository()
    try:
        if state is None:
            records = repository.fetch_all()
        elif state == TriageState.NEEDS_REVIEW.value:
            records = repository.fetch_needs_review()
        elif state == TriageState.DONE.value:
            records = repository.fetch_done()
        else:
            raise HTTPException(status_code=400, detail="state must be 'needsReview' or 'done'")
    except NotConfiguredError as e:
        raise _not_configured(e)

    return EvidenceListResponse(
        items=[EvidenceResponse.from_record(r) for r in records],
        total=len(records),
    )


@router.post("/refresh-resolution", response_model=RefreshResponse)
async def refresh_resolution():
    """Re-resolve participants after the identity directory changed."""
    repository = get_evidence_repository()
    try:
        stats = repository.refresh_participant_resolution()
    except NotConfiguredError as e:
        raise _not_configured(e)
    return RefreshResponse(examined=stats.examined, updated=stats.updated)


@router.get("/recent-meeting/{person_id}", response_model=Optional[EvidenceResponse])
async def recent_meeting(
    person_id: str,
    window_minutes: Optional[int] = Query(default=None, ge=1, description="Lookback window in minutes"),
):
    """Most recent finished meeting with a person, or null."""
    repository = get_evidence_repository()
    max_window = timedelta(minutes=window_minutes) if window_minutes else None
    try:
        meeting = repository.find_recent_meeting(person_id, max_window=max_window)
    except NotConfiguredError as e:
        raise _not_configured(e)
    return EvidenceResponse.from_record(meeting) if meeting else None


@router.get("/{evidence_id}", response_model=EvidenceResponse)
async def get_evidence(evidence_id: str):
    """Get a specific evidence item by ID."""
    repository = get_evidence_repository()
    try:
        record = repository.fetch(evidence_id)
    except NotConfiguredError as e:
        raise _not_configured(e)
    if not record:
        raise HTTPException(status_code=404, detail="Evidence not found")
    return EvidenceResponse.from_record(record)


@router.post("/{evidence_id}/review")
async def mark_reviewed(evidence_id: str):
    """Mark evidence as reviewed."""
    repository = get_evidence_repository()
    try:
        updated = repository.mark_as_reviewed(evidence_id)
    except NotConfiguredError as e:
        raise _not_configured(e)
    if not updated:
        raise HTTPException(status_code=404, detail="Evidence not found")
    return {"status": TriageState.DONE.value, "id": evidence_id}


@router.post("/{evidence_id}/needs-review")
async def mark_needs_review(evidence_id: str):
    """Put evidence back in the review queue."""
    repository = get_evidence_repository()
    try:
        updated = repository.mark_as_needs_review(evidence_id)
    except NotConfiguredError as e:
        raise _not_configured(e)
    if not updated:
        raise HTTPException(status_code=404, detail="Evidence not found")
    return {"status": TriageState.NEEDS_REVIEW.value, "id": evidence_id}
