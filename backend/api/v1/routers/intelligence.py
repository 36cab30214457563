"""
Intelligence Router — alert/suggestion feed and read-only simulations.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from api.deps import get_branch_scope, get_reader
from intelligence.config import SimulationConfig
from intelligence.normalizer import classify
from intelligence.reader import IntelligenceReader
from intelligence.renderer import READ_ONLY_BADGE, READ_ONLY_NOTICE, READ_ONLY_TITLE
from intelligence.simulation import LivenessToken, get_intelligence_feed, run_simulation

router = APIRouter(prefix="/api/v1/intelligence", tags=["intelligence"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class AlertResponse(BaseModel):
    id: UUID
    severity: str
    type: str
    title: str
    message: str
    impact: str | None
    action_label: str
    timestamp: datetime | None
    metadata: dict[str, Any]
    source_record_id: str | None
    source_table: str | None
    event_type: str
    notice_only: bool

    model_config = {"from_attributes": True}


class SuggestionResponse(BaseModel):
    id: UUID
    title: str
    description: str
    action_label: str
    impact_financial: str | None
    category: str
    horizon: str
    metadata: dict[str, Any]
    source_record_id: str | None
    source_table: str | None
    event_type: str

    model_config = {"from_attributes": True}


class HealthReportResponse(BaseModel):
    event_id: UUID
    event_type: str
    title: str
    description: str
    recommended_action: str | None
    impact_label: str
    impact_value: float

    model_config = {"from_attributes": True}


class FeedResponse(BaseModel):
    alerts: list[AlertResponse]
    suggestions: list[SuggestionResponse]
    raw_events: list[dict[str, Any]]
    loading: bool
    health_report: HealthReportResponse | None

    model_config = {"from_attributes": True}


class TableRowResponse(BaseModel):
    label: str
    actual: str
    simulated: str

    model_config = {"from_attributes": True}


class SimulationResultResponse(BaseModel):
    strategy: str
    dish: str
    branch: str
    current_margin: float
    projected_margin: float
    current_daily_utility: float
    projected_daily_utility: float
    monthly_impact: float
    ingredients: list[str]
    table_rows: list[TableRowResponse]
    recommended_action_text: str
    supplier: str
    has_real_cost: bool
    cost_source: str | None
    simulated_price: float | None

    model_config = {"from_attributes": True}


class SimulationEnvelope(BaseModel):
    read_only: bool = True
    badge: str = READ_ONLY_BADGE
    disclaimer_title: str = READ_ONLY_TITLE
    disclaimer: str = READ_ONLY_NOTICE
    result: SimulationResultResponse


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/feed", response_model=FeedResponse)
async def get_feed(
    branch_id: UUID | None = Depends(get_branch_scope),
    reader: IntelligenceReader = Depends(get_reader),
):
    """Unresolved events split into alerts and suggestions, critical first."""
    return await get_intelligence_feed(reader, branch_id)


@router.get("/health-report", response_model=HealthReportResponse | None)
async def get_health_report(
    branch_id: UUID | None = Depends(get_branch_scope),
    reader: IntelligenceReader = Depends(get_reader),
):
    """Headline for the most pressing financial event, or null."""
    feed = await get_intelligence_feed(reader, branch_id)
    return feed.health_report


@router.post("/suggestions/{event_id}/simulate", response_model=SimulationEnvelope)
async def simulate_suggestion(
    event_id: UUID,
    branch_id: UUID | None = Depends(get_branch_scope),
    reader: IntelligenceReader = Depends(get_reader),
):
    """
    Project the financial effect of acting on a suggestion.

    Read-only: no ledger, inventory or recipe row is modified.
    """
    raw_event = await reader.get_event(event_id)
    if raw_event is None:
        raise HTTPException(status_code=404, detail="Event not found")

    classification = classify(raw_event)
    if classification.kind != "suggestion":
        raise HTTPException(
            status_code=422,
            detail=f"Event type '{raw_event.get('event_type')}' is an operational alert and cannot be simulated",
        )

    result = await run_simulation(
        reader,
        classification.value,
        branch_id,
        config=SimulationConfig.from_settings(),
        liveness=LivenessToken(),
    )
    return SimulationEnvelope(result=SimulationResultResponse.model_validate(result))
