"""
Simulation heuristics.

Every constant the strategies rely on lives here so tests (and tenants, via
Settings) can override them without touching strategy code.
"""

from dataclasses import dataclass, field, replace

from core.config import Settings, get_settings


@dataclass(frozen=True)
class ExpenseReductionRule:
    """Reduction percentage and operator advice for one expense category."""

    pct: float
    action: str


DEFAULT_EXPENSE_CATEGORY = "Varios"

EXPENSE_REDUCTION_RULES: dict[str, ExpenseReductionRule] = {
    "Limpieza": ExpenseReductionRule(15, "optimizar el uso de insumos y renegociar con proveedores de servicios."),
    "Marketing": ExpenseReductionRule(30, "evaluar el retorno de inversión (ROI) y pausar campañas no rentables."),
    "Suministros": ExpenseReductionRule(20, "implementar controles de inventario para evitar mermas."),
    "Mantenimiento": ExpenseReductionRule(
        10, "programar revisiones preventivas para evitar reparaciones de emergencia costosas."
    ),
    "Alquiler": ExpenseReductionRule(5, "revisar acuerdos contractuales o buscar eficiencias en servicios compartidos."),
    DEFAULT_EXPENSE_CATEGORY: ExpenseReductionRule(25, "eliminar gastos no esenciales o consolidar compras pequeñas."),
}


@dataclass(frozen=True)
class SimulationConfig:
    """Tunable constants for the three simulation strategies."""

    # Margin adjustment
    min_target_margin: float = 0.35
    max_target_margin: float = 0.99
    baseline_daily_volume: float = 2.0
    days_per_month: int = 30

    # Idle capital recovery
    stock_reduction_pct: float = 0.60
    opportunity_cost_rate: float = 0.10
    default_frozen_capital: float = 500.0
    default_current_qty: float = 150.0
    idle_roa_efficiency: float = 0.15

    # Expense reduction
    expense_rules: dict[str, ExpenseReductionRule] = field(default_factory=lambda: dict(EXPENSE_REDUCTION_RULES))

    def expense_rule(self, category: str) -> ExpenseReductionRule:
        """Rule for a category, falling back to the catch-all bucket."""
        return self.expense_rules.get(category) or self.expense_rules[DEFAULT_EXPENSE_CATEGORY]

    def with_overrides(self, **changes) -> "SimulationConfig":
        return replace(self, **changes)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "SimulationConfig":
        settings = settings or get_settings()
        return cls(
            min_target_margin=settings.sim_min_target_margin,
            max_target_margin=settings.sim_max_target_margin,
            baseline_daily_volume=settings.sim_baseline_daily_volume,
            stock_reduction_pct=settings.sim_stock_reduction_pct,
            opportunity_cost_rate=settings.sim_opportunity_cost_rate,
            default_frozen_capital=settings.sim_default_frozen_capital,
            default_current_qty=settings.sim_default_current_qty,
            idle_roa_efficiency=settings.sim_idle_roa_efficiency,
        )
