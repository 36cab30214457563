"""
Simulation Strategies — read-only what-if projections for a Suggestion.

Three mutually exclusive strategies, chosen by select_strategy():

  1. ExpenseReductionPlan   expense_anomaly events
  2. MarginAdjustmentPlan   financial category, or metadata names a recipe
  3. IdleCapitalPlan        inventory category, or metadata names an ingredient

Margin Adjustment:
  current_margin  = (price − cost) / price            (0 unless both > 0)
  target_margin   = max(metadata.target_margin, 0.35), below 1
  simulated_price = cost / (1 − target_margin)        (only with a real cost)
  monthly_impact  = ((sim_price − cost) − (price − cost)) × daily_volume × 30

Expense Reduction:
  savings = baseline × pct / 100, baseline = historical monthly average or,
  without history, the triggering expense itself.

Idle Capital Recovery:
  static transformation of the event's own metadata, no live reads.

Strategies only receive an IntelligenceReader; nothing here can write.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

import structlog

from intelligence.config import DEFAULT_EXPENSE_CATEGORY, SimulationConfig
from intelligence.cost_resolver import CostSource, resolve_cost, resolve_recipe
from intelligence.formatting import finite, format_money, format_pct, format_units
from intelligence.metadata import meta_number, meta_text, parse_currency
from intelligence.normalizer import SmartSuggestion
from intelligence.reader import IntelligenceReader

logger = structlog.get_logger()

MISSING_PRICE = "No Configurado"
MISSING_REAL_COST = "Falta Costo Real"
AWAITING_PURCHASES = "Esperando Compras"
NO_HISTORY = "Sin Historial"


class StrategyKind(str, Enum):
    EXPENSE_REDUCTION = "expense_reduction"
    MARGIN_ADJUSTMENT = "margin_adjustment"
    IDLE_CAPITAL = "idle_capital"


# ── Plans (closed union) ───────────────────────────────────────────────


@dataclass(frozen=True)
class ExpenseReductionPlan:
    category: str
    actual_amount: float

    kind = StrategyKind.EXPENSE_REDUCTION


@dataclass(frozen=True)
class MarginAdjustmentPlan:
    source_record_id: Any
    recipe_name: str | None
    target_margin: float | None

    kind = StrategyKind.MARGIN_ADJUSTMENT


@dataclass(frozen=True)
class IdleCapitalPlan:
    ingredient_name: str | None
    frozen_capital: float | None
    current_qty: float | None

    kind = StrategyKind.IDLE_CAPITAL


SimulationPlan = Union[ExpenseReductionPlan, MarginAdjustmentPlan, IdleCapitalPlan]


def select_strategy(suggestion: SmartSuggestion) -> SimulationPlan:
    """
    Map a Suggestion onto exactly one plan.

    Priority: expense_anomaly → financial/recipe → inventory/ingredient.
    Suggestions matching none of these are treated as margin adjustments,
    since every simulatable event type is financial in nature.
    """
    meta = suggestion.metadata or {}
    recipe_name = meta_text(meta, "recipe_name")
    ingredient_name = meta_text(meta, "ingredient_name")

    if suggestion.event_type == "expense_anomaly":
        return ExpenseReductionPlan(
            category=meta_text(meta, "category") or DEFAULT_EXPENSE_CATEGORY,
            actual_amount=max(meta_number(meta, "actual_amount") or 0.0, 0.0),
        )

    margin_plan = MarginAdjustmentPlan(
        source_record_id=suggestion.source_record_id or meta.get("_source_record_id"),
        recipe_name=recipe_name,
        target_margin=meta_number(meta, "target_margin"),
    )
    if suggestion.category == "financial" or recipe_name:
        return margin_plan

    if suggestion.category == "inventory" or ingredient_name:
        return IdleCapitalPlan(
            ingredient_name=ingredient_name,
            frozen_capital=meta_number(meta, "frozen_capital") or parse_currency(suggestion.impact_financial),
            current_qty=meta_number(meta, "current_qty"),
        )

    return margin_plan


# ── Outputs ────────────────────────────────────────────────────────────


@dataclass
class TableRow:
    label: str
    actual: str
    simulated: str


@dataclass
class SimulationContext:
    """Everything a strategy may consult. The reader is SELECT-only."""

    suggestion: SmartSuggestion
    reader: IntelligenceReader
    branch_id: uuid.UUID | None
    branch_label: str
    config: SimulationConfig = field(default_factory=SimulationConfig)


@dataclass
class StrategyOutput:
    strategy: StrategyKind
    dish: str
    branch: str
    current_margin: float = 0.0
    projected_margin: float = 0.0
    current_daily_utility: float = 0.0
    projected_daily_utility: float = 0.0
    monthly_impact: float = 0.0
    ingredients: list[str] = field(default_factory=list)
    table_rows: list[TableRow] = field(default_factory=list)
    recommended_action_text: str | None = None
    has_real_cost: bool = True
    cost_source: str | None = None
    simulated_price: float | None = None


# ── Expense Reduction ──────────────────────────────────────────────────


async def simulate_expense_reduction(plan: ExpenseReductionPlan, ctx: SimulationContext) -> StrategyOutput:
    rule = ctx.config.expense_rule(plan.category)
    pct = rule.pct
    pct_label = f"{pct:g}%"

    historical = await ctx.reader.monthly_expense_average(plan.category, ctx.branch_id)
    from_history = historical is not None and historical > 0
    if from_history:
        baseline = historical
    elif plan.actual_amount > 0:
        baseline = plan.actual_amount
    else:
        baseline = None

    output = StrategyOutput(
        strategy=StrategyKind.EXPENSE_REDUCTION,
        dish=f"Gasto: {plan.category}",
        branch=ctx.branch_label,
        projected_margin=pct / 100,
        ingredients=[plan.category],
    )

    if baseline is None:
        output.table_rows = [
            TableRow("Categoría", plan.category, plan.category),
            TableRow("Gasto Referencial", NO_HISTORY, NO_HISTORY),
            TableRow("Reducción Sugerida", "0%", pct_label),
            TableRow("Ahorro Proyectado", "$0.00", NO_HISTORY),
        ]
        output.recommended_action_text = (
            f'No se pudieron obtener datos suficientes para simular la categoría "{plan.category}".\n\n'
            f"Sugerimos revisar si este gasto es estrictamente necesario o si puede reducirse en un "
            f"{pct_label} para mejorar el flujo de caja."
        )
        return output

    savings = baseline * pct / 100
    days = ctx.config.days_per_month
    output.projected_daily_utility = savings / days if days else 0.0
    output.monthly_impact = savings
    output.table_rows = [
        TableRow("Categoría", plan.category, plan.category),
        TableRow("Gasto Referencial", format_money(baseline), format_money(baseline - savings)),
        TableRow("Reducción Sugerida", "0%", pct_label),
        TableRow("Ahorro Proyectado", "$0.00", format_money(savings)),
        TableRow("Impacto en Caja (Mensual)", "$0.00", format_money(savings)),
    ]

    if from_history:
        lead = f'Se ha detectado un desvío en "{plan.category}". '
    else:
        lead = f"No hay suficiente historial, pero basado en este gasto de {format_money(plan.actual_amount)}, "
    output.recommended_action_text = (
        f"{lead}Sugerimos {rule.action}\n\n"
        f"Con un ajuste del {pct_label}, podrías ahorrar:\n\n"
        f"{format_money(savings)} mensuales\n\n"
        "📍 Finanzas → Gastos → Configurar Presupuesto"
    )
    return output


# ── Margin Adjustment ──────────────────────────────────────────────────


def clamp_target_margin(requested: float | None, config: SimulationConfig) -> float:
    """
    Never below the configured floor.

    Targets of 100% or more have no finite price and use the configured
    ceiling instead; anything below 100% is kept as requested.
    """
    target = max(finite(requested, default=config.min_target_margin), config.min_target_margin)
    if target >= 1:
        return config.max_target_margin
    return target


async def simulate_margin_adjustment(plan: MarginAdjustmentPlan, ctx: SimulationContext) -> StrategyOutput:
    config = ctx.config
    recipe = await resolve_recipe(ctx.reader, plan.source_record_id, plan.recipe_name)
    recipe_id = recipe.recipe_id if recipe else None

    cost_basis = await resolve_cost(ctx.reader, recipe_id, ctx.branch_id)
    has_real_cost = cost_basis.confidence and cost_basis.unit_cost > 0
    cost = cost_basis.unit_cost if has_real_cost else 0.0
    price = finite(recipe.selling_price) if recipe else 0.0

    current_margin = (price - cost) / price if price > 0 and cost > 0 else 0.0
    target_margin = clamp_target_margin(plan.target_margin, config)
    simulated_price = cost / (1 - target_margin) if has_real_cost else 0.0

    volume = await ctx.reader.completed_sales_volume(recipe_id, ctx.branch_id) if recipe_id else 0.0
    if volume <= 0:
        volume = config.baseline_daily_volume

    current_util = (price - cost) * volume if has_real_cost else 0.0
    projected_util = (simulated_price - cost) * volume if has_real_cost else 0.0
    monthly_impact = (projected_util - current_util) * config.days_per_month

    ingredients: list[str] = []
    if recipe_id:
        items = await ctx.reader.recipe_items(recipe_id)
        ingredients = await ctx.reader.ingredient_names(ingredient_id for ingredient_id, _ in items)

    dish = recipe.name if recipe else (plan.recipe_name or ctx.suggestion.title)
    days = config.days_per_month

    rows = [
        TableRow(
            "Precio Venta",
            format_money(price) if price > 0 else MISSING_PRICE,
            format_money(simulated_price) if has_real_cost else MISSING_REAL_COST,
        ),
        TableRow(
            "Costo Producción",
            format_money(cost) if has_real_cost else AWAITING_PURCHASES,
            format_money(cost) if has_real_cost else AWAITING_PURCHASES,
        ),
        TableRow(
            "Margen Operativo",
            format_pct(current_margin) if has_real_cost and price > 0 else "0%",
            format_pct(target_margin) if has_real_cost else "0%",
        ),
        TableRow(
            "Utilidad Diaria",
            format_money(current_util),
            format_money(projected_util),
        ),
        TableRow(
            "Utilidad Mensual",
            format_money(current_util * days),
            format_money(projected_util * days),
        ),
    ]

    if has_real_cost:
        text = (
            f'Para recuperar el margen objetivo del {target_margin * 100:.0f}% en "{dish}", '
            f"deberías aumentar manualmente el precio a:\n\n"
            f"{format_money(simulated_price)}\n\n"
            "desde:\n📍 Menú → Recetas → Editar Precio"
        )
    else:
        text = (
            f'No se puede calcular económicamente la proyección de "{dish}" porque no existen compras previas '
            "en esta sucursal o no se han cargado costos en almacén (Platos).\n\n"
            "Requiere ingresar facturas de proveedores o configurar el costo técnico de los insumos primero."
        )

    logger.info(
        "simulation.margin_adjustment",
        recipe_id=str(recipe_id) if recipe_id else None,
        cost_source=cost_basis.source.value,
        has_real_cost=has_real_cost,
        daily_volume=volume,
    )

    return StrategyOutput(
        strategy=StrategyKind.MARGIN_ADJUSTMENT,
        dish=dish,
        branch=ctx.branch_label,
        current_margin=current_margin,
        projected_margin=target_margin,
        current_daily_utility=current_util,
        projected_daily_utility=projected_util,
        monthly_impact=monthly_impact,
        ingredients=ingredients,
        table_rows=rows,
        recommended_action_text=text,
        has_real_cost=has_real_cost,
        cost_source=cost_basis.source.value if has_real_cost else CostSource.NONE.value,
        simulated_price=simulated_price if has_real_cost else None,
    )


# ── Idle Capital Recovery ──────────────────────────────────────────────


def simulate_idle_capital(plan: IdleCapitalPlan, ctx: SimulationContext) -> StrategyOutput:
    """Pure heuristic over the event's metadata; performs no reads."""
    config = ctx.config
    idle_capital = (
        plan.frozen_capital if plan.frozen_capital and plan.frozen_capital > 0 else config.default_frozen_capital
    )
    current_stock = plan.current_qty if plan.current_qty and plan.current_qty > 0 else config.default_current_qty

    keep_ratio = 1 - config.stock_reduction_pct
    optimized_stock = current_stock * keep_ratio
    optimized_capital = idle_capital * keep_ratio
    recovered_capital = idle_capital - optimized_capital
    dish = plan.ingredient_name or ctx.suggestion.title

    return StrategyOutput(
        strategy=StrategyKind.IDLE_CAPITAL,
        dish=dish,
        branch=ctx.branch_label,
        current_margin=0.0,
        projected_margin=config.idle_roa_efficiency,
        monthly_impact=recovered_capital,
        ingredients=[plan.ingredient_name] if plan.ingredient_name else [],
        table_rows=[
            TableRow("Stock Almacenado", format_units(current_stock), format_units(optimized_stock)),
            TableRow("Capital Inmovilizado", format_money(idle_capital), format_money(optimized_capital)),
            TableRow("Rotación Inventario", "Lenta/Inactiva", "Dinámica Óptima"),
            TableRow(
                "Costo Oportunidad",
                f"-{format_money(idle_capital * config.opportunity_cost_rate)}/mes",
                "$0.00/mes",
            ),
            TableRow("Flujo Caja a Recuperar", "$0.00", format_money(recovered_capital)),
        ],
        recommended_action_text=(
            f'Para liberar capital inmovilizado en "{dish}", deberías pausar compras temporalmente '
            f"y consumir stock hasta alcanzar un máximo de:\n\n"
            f"{optimized_stock:.0f} unidades\n\n"
            "desde:\n📍 Compras → Proveedores → Ajustar Nivel Mínimo"
        ),
    )


async def run_strategy(plan: SimulationPlan, ctx: SimulationContext) -> StrategyOutput:
    """Dispatch a plan to its strategy."""
    if isinstance(plan, ExpenseReductionPlan):
        return await simulate_expense_reduction(plan, ctx)
    if isinstance(plan, MarginAdjustmentPlan):
        return await simulate_margin_adjustment(plan, ctx)
    return simulate_idle_capital(plan, ctx)
