"""
Financial intelligence package.

Turns backend-emitted system events into operator alerts and simulatable
suggestions, and runs read-only what-if projections on suggestions:
  - normalizer     system_events → SmartAlert / SmartSuggestion
  - cost_resolver  snapshot → technical sheet → unavailable
  - strategies     expense reduction, margin adjustment, idle capital
  - renderer       uniform SimulationResult

Usage:
    from intelligence import IntelligenceReader, get_intelligence_feed, run_simulation

    reader = IntelligenceReader(session)
    feed = await get_intelligence_feed(reader, branch_id)
    result = await run_simulation(reader, feed.suggestions[0], branch_id)
"""

from intelligence.config import SimulationConfig
from intelligence.cost_resolver import CostBasis, CostSource, resolve_cost
from intelligence.normalizer import (
    AlertSeverity,
    AlertType,
    IntelligenceFeed,
    SmartAlert,
    SmartSuggestion,
    classify,
)
from intelligence.reader import IntelligenceReader
from intelligence.renderer import SimulationResult
from intelligence.simulation import (
    IntelligenceFeedPoller,
    LivenessToken,
    get_intelligence_feed,
    run_simulation,
)

__all__ = [
    "AlertSeverity",
    "AlertType",
    "CostBasis",
    "CostSource",
    "IntelligenceFeed",
    "IntelligenceFeedPoller",
    "IntelligenceReader",
    "LivenessToken",
    "SimulationConfig",
    "SimulationResult",
    "SmartAlert",
    "SmartSuggestion",
    "classify",
    "get_intelligence_feed",
    "resolve_cost",
    "run_simulation",
]
