"""
Intelligence service entry points.

  get_intelligence_feed()  open events → alerts, suggestions, health report
  run_simulation()         Suggestion → SimulationResult, zero writes
  IntelligenceFeedPoller   keeps a feed fresh on a fixed interval

Each simulation is scoped to one request: construct → render → discard.
A LivenessToken lets the caller abandon a run; results that complete after
cancellation are dropped instead of returned.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from intelligence.config import SimulationConfig
from intelligence.normalizer import IntelligenceFeed, SmartSuggestion, normalize_events
from intelligence.reader import IntelligenceReader
from intelligence.renderer import SimulationResult, render
from intelligence.strategies import SimulationContext, run_strategy, select_strategy

logger = structlog.get_logger()

GLOBAL_BRANCH_LABEL = "Global Multi-Sucursal"


class LivenessToken:
    """Advisory cancellation flag checked before a result is handed back."""

    def __init__(self) -> None:
        self._alive = True

    @property
    def alive(self) -> bool:
        return self._alive

    def cancel(self) -> None:
        self._alive = False


async def branch_label(reader: IntelligenceReader, branch_id: uuid.UUID | None) -> str:
    if branch_id is None:
        return GLOBAL_BRANCH_LABEL
    name = await reader.branch_name(branch_id)
    return f"Sucursal: {name or branch_id}"


async def get_intelligence_feed(reader: IntelligenceReader, branch_id: uuid.UUID | None) -> IntelligenceFeed:
    events = await reader.fetch_open_events(branch_id)
    feed = normalize_events(events)
    logger.info(
        "intelligence.feed_built",
        branch_id=str(branch_id) if branch_id else "GLOBAL",
        events=len(events),
        alerts=len(feed.alerts),
        suggestions=len(feed.suggestions),
    )
    return feed


async def run_simulation(
    reader: IntelligenceReader,
    suggestion: SmartSuggestion,
    branch_id: uuid.UUID | None,
    config: SimulationConfig | None = None,
    liveness: LivenessToken | None = None,
) -> SimulationResult | None:
    """
    Run the strategy matching `suggestion` and render its projection.

    Returns None when `liveness` was cancelled before the result was ready.
    """
    config = config or SimulationConfig.from_settings()
    log = logger.bind(suggestion_id=str(suggestion.id), event_type=suggestion.event_type)

    if liveness is not None and not liveness.alive:
        log.info("simulation.discarded", stage="before_start")
        return None

    plan = select_strategy(suggestion)
    ctx = SimulationContext(
        suggestion=suggestion,
        reader=reader,
        branch_id=branch_id,
        branch_label=await branch_label(reader, branch_id),
        config=config,
    )
    output = await run_strategy(plan, ctx)

    if liveness is not None and not liveness.alive:
        log.info("simulation.discarded", stage="after_strategy", strategy=plan.kind.value)
        return None

    result = render(output)
    log.info(
        "simulation.completed",
        strategy=result.strategy,
        has_real_cost=result.has_real_cost,
        monthly_impact=round(result.monthly_impact, 2),
    )
    return result


class IntelligenceFeedPoller:
    """
    Periodically rebuilds the intelligence feed for one branch scope.

    `feed.loading` is True until the first refresh lands. A failed refresh
    keeps the previous feed; the next tick tries again.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        branch_id: uuid.UUID | None,
        tenant_id: uuid.UUID | None = None,
        interval_seconds: float | None = None,
    ):
        self.session_factory = session_factory
        self.branch_id = branch_id
        self.tenant_id = tenant_id
        if interval_seconds is None:
            interval_seconds = get_settings().intelligence_poll_interval_seconds
        self.interval_seconds = interval_seconds
        self.feed = IntelligenceFeed(loading=True)
        self._task: asyncio.Task | None = None

    async def refresh(self) -> IntelligenceFeed:
        async with self.session_factory() as session:
            reader = IntelligenceReader(session, tenant_id=self.tenant_id)
            self.feed = await get_intelligence_feed(reader, self.branch_id)
        return self.feed

    async def _run(self) -> None:
        while True:
            try:
                await self.refresh()
            except Exception as exc:
                logger.error("intelligence.poll_failed", error=str(exc), exc_info=True)
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
