"""
Read-only data access for the intelligence layer.

IntelligenceReader is the single object in this package that touches the
database session, and it only issues SELECTs. Every query is best-effort:
a failure is logged and reported as "no data" so callers can fall through
to their next source instead of aborting.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar

import structlog
from sqlalchemy import case, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import (
    Branch,
    Expense,
    Ingredient,
    InventoryItem,
    Order,
    OrderItem,
    Recipe,
    RecipeCostSnapshotDaily,
    RecipeItem,
    SystemEvent,
)

logger = structlog.get_logger()

T = TypeVar("T")

GLOBAL_SCOPE = "GLOBAL"
COMPLETED_ORDER_STATUS = "completed"

_SEVERITY_ORDER = case(
    (SystemEvent.severity == "critical", 0),
    (SystemEvent.severity == "warning", 1),
    else_=2,
)


def parse_branch_scope(value: Any) -> uuid.UUID | None:
    """
    Normalize a branch selector. None, "" and "GLOBAL" mean all branches.

    Raises ValueError for anything else that is not a UUID.
    """
    if value is None or isinstance(value, uuid.UUID):
        return value
    text = str(value).strip()
    if not text or text.upper() == GLOBAL_SCOPE:
        return None
    return uuid.UUID(text)


def parse_record_id(raw: Any) -> uuid.UUID | None:
    """
    Recipe id carried by an event, or None when absent or malformed.

    Triggers have been seen to emit "[object Object]" and {"id": ...} shapes.
    """
    if raw is None:
        return None
    if isinstance(raw, uuid.UUID):
        return raw
    if isinstance(raw, dict):
        raw = raw.get("id")
        if raw is None:
            return None
    try:
        return uuid.UUID(str(raw).strip())
    except (TypeError, ValueError):
        return None


def event_to_record(event: SystemEvent) -> dict[str, Any]:
    """Flatten a SystemEvent row into the raw mapping the normalizer consumes."""
    return {
        "id": event.id,
        "event_type": event.event_type,
        "event_category": event.event_category,
        "severity": event.severity,
        "branch_id": event.branch_id,
        "source_table": event.source_table,
        "source_record_id": event.source_record_id,
        "impact_value": event.impact_value,
        "impact_projection": event.impact_projection,
        "recommended_action": event.recommended_action,
        "metadata": event.event_metadata,
        "resolved": event.resolved,
        "created_at": event.created_at,
    }


class IntelligenceReader:
    """Point-in-time, SELECT-only reads keyed by recipe, ingredient and branch."""

    def __init__(self, session: AsyncSession, tenant_id: uuid.UUID | None = None):
        self._session = session
        self.tenant_id = tenant_id
        self.logger = logger.bind(tenant_id=str(tenant_id) if tenant_id else None)

    async def _best_effort(self, label: str, fetch: Callable[[], Awaitable[T]], default: T) -> T:
        try:
            return await fetch()
        except SQLAlchemyError as exc:
            self.logger.warning("intelligence.read_failed", query=label, error=str(exc), exc_info=True)
            return default

    # ── Events ─────────────────────────────────────────────────────────

    async def fetch_open_events(self, branch_id: uuid.UUID | None) -> list[dict[str, Any]]:
        """Unresolved events, critical first, most recent first within a severity."""

        async def _fetch():
            query = select(SystemEvent).where(SystemEvent.resolved.is_(False))
            if self.tenant_id is not None:
                query = query.where(SystemEvent.tenant_id == self.tenant_id)
            if branch_id is not None:
                query = query.where(SystemEvent.branch_id == branch_id)
            query = query.order_by(_SEVERITY_ORDER, SystemEvent.created_at.desc())
            result = await self._session.execute(query)
            return [event_to_record(ev) for ev in result.scalars().all()]

        return await self._best_effort("system_events", _fetch, [])

    async def get_event(self, event_id: uuid.UUID) -> dict[str, Any] | None:
        async def _fetch():
            query = select(SystemEvent).where(SystemEvent.id == event_id)
            if self.tenant_id is not None:
                query = query.where(SystemEvent.tenant_id == self.tenant_id)
            event = (await self._session.execute(query)).scalar_one_or_none()
            return event_to_record(event) if event else None

        return await self._best_effort("system_event", _fetch, None)

    async def branch_name(self, branch_id: uuid.UUID) -> str | None:
        async def _fetch():
            query = select(Branch.name).where(Branch.branch_id == branch_id)
            if self.tenant_id is not None:
                query = query.where(Branch.tenant_id == self.tenant_id)
            return (await self._session.execute(query)).scalar_one_or_none()

        return await self._best_effort("branches", _fetch, None)

    # ── Recipes ────────────────────────────────────────────────────────

    async def get_recipe(self, recipe_id: uuid.UUID) -> Recipe | None:
        async def _fetch():
            query = select(Recipe).where(Recipe.id == recipe_id)
            if self.tenant_id is not None:
                query = query.where(Recipe.tenant_id == self.tenant_id)
            return (await self._session.execute(query)).scalar_one_or_none()

        return await self._best_effort("recipes.by_id", _fetch, None)

    async def find_recipe_by_name(self, name: str) -> Recipe | None:
        """Case-insensitive exact name match; first match wins."""

        async def _fetch():
            query = select(Recipe).where(func.lower(Recipe.name) == name.strip().lower())
            if self.tenant_id is not None:
                query = query.where(Recipe.tenant_id == self.tenant_id)
            query = query.order_by(Recipe.created_at).limit(1)
            return (await self._session.execute(query)).scalars().first()

        return await self._best_effort("recipes.by_name", _fetch, None)

    async def latest_cost_snapshot(self, recipe_id: uuid.UUID, branch_id: uuid.UUID | None) -> float | None:
        """Most recent daily average cost per unit for the recipe."""

        async def _fetch():
            query = select(RecipeCostSnapshotDaily.avg_cost_per_unit).where(
                RecipeCostSnapshotDaily.recipe_id == recipe_id
            )
            if self.tenant_id is not None:
                query = query.where(RecipeCostSnapshotDaily.tenant_id == self.tenant_id)
            if branch_id is not None:
                query = query.where(RecipeCostSnapshotDaily.branch_id == branch_id)
            query = query.order_by(RecipeCostSnapshotDaily.created_at.desc()).limit(1)
            return (await self._session.execute(query)).scalars().first()

        return await self._best_effort("recipe_cost_snapshot_daily", _fetch, None)

    async def recipe_items(self, recipe_id: uuid.UUID) -> list[tuple[uuid.UUID, float]]:
        """(ingredient_id, quantity_gr) pairs of the recipe's technical sheet."""

        async def _fetch():
            result = await self._session.execute(
                select(RecipeItem.ingredient_id, RecipeItem.quantity_gr).where(RecipeItem.recipe_id == recipe_id)
            )
            return [(row.ingredient_id, float(row.quantity_gr or 0)) for row in result.all()]

        return await self._best_effort("recipe_items", _fetch, [])

    async def ingredient_names(self, ingredient_ids: Iterable[uuid.UUID]) -> list[str]:
        ids = list(ingredient_ids)
        if not ids:
            return []

        async def _fetch():
            result = await self._session.execute(
                select(Ingredient.name).where(Ingredient.id.in_(ids)).order_by(Ingredient.name)
            )
            return list(result.scalars().all())

        return await self._best_effort("ingredients", _fetch, [])

    # ── Inventory ──────────────────────────────────────────────────────

    async def inventory_unit_costs(
        self,
        ingredient_ids: Iterable[uuid.UUID],
        branch_id: uuid.UUID | None,
    ) -> dict[uuid.UUID, float]:
        """
        Cost per gram for each ingredient stocked in scope.

        When several inventory rows match (global scope spans branches) the
        cost is weighted by quantity on hand, or a plain mean if nothing is
        on hand. Ingredients with no row in scope are absent from the result.
        """
        ids = list(ingredient_ids)
        if not ids:
            return {}

        async def _fetch():
            query = select(
                InventoryItem.ingredient_id,
                InventoryItem.unit_cost_gr,
                InventoryItem.current_qty_gr,
            ).where(InventoryItem.ingredient_id.in_(ids))
            if self.tenant_id is not None:
                query = query.where(InventoryItem.tenant_id == self.tenant_id)
            if branch_id is not None:
                query = query.where(InventoryItem.branch_id == branch_id)
            rows = (await self._session.execute(query)).all()

            grouped: dict[uuid.UUID, list[tuple[float, float]]] = defaultdict(list)
            for row in rows:
                grouped[row.ingredient_id].append((float(row.unit_cost_gr or 0), max(float(row.current_qty_gr or 0), 0)))

            costs = {}
            for ingredient_id, entries in grouped.items():
                total_qty = sum(qty for _, qty in entries)
                if total_qty > 0:
                    costs[ingredient_id] = sum(cost * qty for cost, qty in entries) / total_qty
                else:
                    costs[ingredient_id] = sum(cost for cost, _ in entries) / len(entries)
            return costs

        return await self._best_effort("inventory", _fetch, {})

    # ── Sales ──────────────────────────────────────────────────────────

    async def completed_sales_volume(self, recipe_id: uuid.UUID, branch_id: uuid.UUID | None) -> float:
        """Units of the recipe sold on completed orders."""

        async def _fetch():
            query = (
                select(func.coalesce(func.sum(OrderItem.quantity), 0))
                .join(Order, Order.id == OrderItem.order_id)
                .where(OrderItem.recipe_id == recipe_id, Order.status == COMPLETED_ORDER_STATUS)
            )
            if self.tenant_id is not None:
                query = query.where(Order.tenant_id == self.tenant_id)
            if branch_id is not None:
                query = query.where(Order.branch_id == branch_id)
            return float((await self._session.execute(query)).scalar() or 0)

        return await self._best_effort("order_items", _fetch, 0.0)

    # ── Expenses ───────────────────────────────────────────────────────

    async def monthly_expense_average(self, category: str, branch_id: uuid.UUID | None) -> float | None:
        """Average of calendar-month totals for the category; None without history."""

        async def _fetch():
            query = select(Expense.amount, Expense.incurred_on).where(Expense.category == category)
            if self.tenant_id is not None:
                query = query.where(Expense.tenant_id == self.tenant_id)
            if branch_id is not None:
                query = query.where(Expense.branch_id == branch_id)
            rows = (await self._session.execute(query)).all()
            if not rows:
                return None

            monthly: dict[tuple[int, int], float] = defaultdict(float)
            for row in rows:
                monthly[(row.incurred_on.year, row.incurred_on.month)] += float(row.amount or 0)
            return sum(monthly.values()) / len(monthly)

        return await self._best_effort("expenses", _fetch, None)
