"""
Projection Renderer — StrategyOutput → SimulationResult.

Shape normalization only: whichever strategy ran, the result carries the
same fields, every number is finite, and every text field is populated.
SimulationResult is never persisted.
"""

from dataclasses import dataclass, field

from intelligence.formatting import finite
from intelligence.strategies import StrategyOutput, TableRow

READ_ONLY_TITLE = "Esta simulación no aplica cambios reales al sistema."
READ_ONLY_NOTICE = (
    "Para ejecutar esta recomendación debes realizar el ajuste manualmente desde el módulo correspondiente. "
    "No se modificará el ledger, el inventario ni los recetarios."
)
READ_ONLY_BADGE = "100% READ-ONLY • LEDGER SAFE"

DEFAULT_INGREDIENTS = ("(Analizado internamente)",)
DEFAULT_SUPPLIER = "Basado en histórico"
DEFAULT_ACTION_TEXT = "Ajuste manual requerido."


@dataclass
class SimulationResult:
    strategy: str
    dish: str
    branch: str
    current_margin: float
    projected_margin: float
    current_daily_utility: float
    projected_daily_utility: float
    monthly_impact: float
    ingredients: list[str]
    table_rows: list[TableRow]
    recommended_action_text: str
    supplier: str = DEFAULT_SUPPLIER
    has_real_cost: bool = True
    cost_source: str | None = None
    simulated_price: float | None = None
    read_only: bool = field(default=True, init=False)


def render(output: StrategyOutput) -> SimulationResult:
    simulated_price = finite(output.simulated_price) if output.simulated_price is not None else None
    return SimulationResult(
        strategy=output.strategy.value,
        dish=output.dish,
        branch=output.branch,
        current_margin=finite(output.current_margin),
        projected_margin=finite(output.projected_margin),
        current_daily_utility=finite(output.current_daily_utility),
        projected_daily_utility=finite(output.projected_daily_utility),
        monthly_impact=finite(output.monthly_impact),
        ingredients=[name for name in output.ingredients if name] or list(DEFAULT_INGREDIENTS),
        table_rows=[TableRow(str(row.label), str(row.actual), str(row.simulated)) for row in output.table_rows],
        recommended_action_text=(output.recommended_action_text or "").strip() or DEFAULT_ACTION_TEXT,
        has_real_cost=output.has_real_cost,
        cost_source=output.cost_source,
        simulated_price=simulated_price,
    )
