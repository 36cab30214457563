"""
Cost Resolver — best-available unit cost for a recipe in a branch scope.

Tiers, each tried only when the previous one yields nothing:

  1. branch_snapshot   latest recipe_cost_snapshot_daily.avg_cost_per_unit > 0
  2. technical_recipe  Σ quantity_gr × inventory.unit_cost_gr over the recipe's
                       ingredients stocked in scope (unstocked ones add 0)
  3. none              confidence=False, unit_cost=0

A CostBasis is built fresh per simulation and never cached.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from db.models import Recipe
from intelligence.reader import IntelligenceReader, parse_record_id

logger = structlog.get_logger()


class CostSource(str, Enum):
    BRANCH_SNAPSHOT = "branch_snapshot"
    TECHNICAL_RECIPE = "technical_recipe"
    NONE = "none"


@dataclass(frozen=True)
class CostBasis:
    unit_cost: float
    source: CostSource
    confidence: bool
    # ingredient_ids of the technical sheet without a cost in scope
    missing_ingredients: tuple[uuid.UUID, ...] = field(default=())

    @classmethod
    def unavailable(cls) -> "CostBasis":
        return cls(unit_cost=0.0, source=CostSource.NONE, confidence=False)


@dataclass(frozen=True)
class ResolvedRecipe:
    recipe_id: uuid.UUID
    name: str
    selling_price: float


async def resolve_recipe(
    reader: IntelligenceReader,
    source_record_id: Any,
    recipe_name: str | None,
) -> ResolvedRecipe | None:
    """
    Identify the recipe an event refers to.

    Prefers the id carried by the event; when that is absent, malformed or
    unknown, falls back to a case-insensitive name lookup (first match).
    """
    recipe: Recipe | None = None
    recipe_id = parse_record_id(source_record_id)
    if recipe_id is not None:
        recipe = await reader.get_recipe(recipe_id)

    if recipe is None and recipe_name:
        logger.info("cost_resolver.name_fallback", recipe_name=recipe_name, source_record_id=str(source_record_id))
        recipe = await reader.find_recipe_by_name(recipe_name)

    if recipe is None:
        return None
    return ResolvedRecipe(
        recipe_id=recipe.id,
        name=recipe.name,
        selling_price=float(recipe.selling_price or 0),
    )


async def resolve_cost(
    reader: IntelligenceReader,
    recipe_id: uuid.UUID | None,
    branch_id: uuid.UUID | None,
) -> CostBasis:
    """Walk the cost tiers for `recipe_id` within `branch_id` (None = all branches)."""
    if recipe_id is None:
        return CostBasis.unavailable()

    log = logger.bind(recipe_id=str(recipe_id), branch_id=str(branch_id) if branch_id else "GLOBAL")

    # Tier 1: branch snapshot
    snapshot = await reader.latest_cost_snapshot(recipe_id, branch_id)
    if snapshot is not None and snapshot > 0:
        log.info("cost_resolver.resolved", source=CostSource.BRANCH_SNAPSHOT.value, unit_cost=snapshot)
        return CostBasis(unit_cost=float(snapshot), source=CostSource.BRANCH_SNAPSHOT, confidence=True)

    # Tier 2: technical sheet × branch inventory cost
    items = await reader.recipe_items(recipe_id)
    if not items:
        log.warning("cost_resolver.no_technical_items")
        return CostBasis.unavailable()

    unit_costs = await reader.inventory_unit_costs([ingredient_id for ingredient_id, _ in items], branch_id)
    technical_cost = sum(quantity * unit_costs.get(ingredient_id, 0.0) for ingredient_id, quantity in items)
    missing = tuple(ingredient_id for ingredient_id, _ in items if ingredient_id not in unit_costs)

    if technical_cost > 0:
        log.info(
            "cost_resolver.resolved",
            source=CostSource.TECHNICAL_RECIPE.value,
            unit_cost=round(technical_cost, 4),
            missing_ingredients=len(missing),
        )
        return CostBasis(
            unit_cost=technical_cost,
            source=CostSource.TECHNICAL_RECIPE,
            confidence=True,
            missing_ingredients=missing,
        )

    log.warning("cost_resolver.technical_cost_zero", items=len(items), missing_ingredients=len(missing))
    return CostBasis(unit_cost=0.0, source=CostSource.NONE, confidence=False, missing_ingredients=missing)
