"""
Event Normalizer — system_events → Alerts and Suggestions.

Backend triggers emit generic `system_events` rows. This module projects each
row into exactly one of:

  - SmartAlert:      operational notice for the timeline feed
  - SmartSuggestion: actionable recommendation that can be simulated

Classification is total: unknown event types, categories and severities
degrade to generic defaults, and malformed metadata degrades to {}.
Pure transformation, no I/O.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Mapping

from intelligence.formatting import format_money
from intelligence.metadata import meta_number, meta_text, parse_metadata


class AlertSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"

    @property
    def rank(self) -> int:
        """Sort key: critical first."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {AlertSeverity.CRITICAL: 0, AlertSeverity.WARNING: 1, AlertSeverity.INFO: 2}


class AlertType(str, Enum):
    INVENTORY = "INVENTORY"
    FINANCIAL = "FINANCIAL"
    SUPPLIER = "SUPPLIER"
    CASH = "CASH"
    ADMIN = "ADMIN"


SUGGESTION_EVENT_TYPES = frozenset({"margin_drift", "profit_deviation", "expense_anomaly", "efficiency_leak"})
NOTICE_ONLY_EVENT_TYPES = frozenset({"idle_inventory", "idle_inventory_capital"})

EVENT_TYPE_TITLES = {
    "margin_drift": "Desviación de Margen",
    "profit_deviation": "Desviación de Utilidad",
    "idle_capital": "Capital Estancado",
    "idle_inventory_capital": "Inventario Inmóvil",
    "low_stock": "Stock Bajo",
    "high_waste": "Alerta de Merma",
    "cost_increase": "Incremento de Costo",
    "cash_shortage": "Faltante en Caja",
    "void_spike": "Anomalía en Cancelaciones",
    "expense_anomaly": "Gasto Inusual Detectado",
    "efficiency_leak": "Fuga de Eficiencia Crítica",
}

_CATEGORY_TYPES = {
    "inventory": AlertType.INVENTORY,
    "financial": AlertType.FINANCIAL,
}

DEFAULT_ALERT_MESSAGE = "Anomalía detectada."
REVIEW_LABEL = "Revisar"
SIMULATE_LABEL = "Ver Simulación"

_SEPARATORS = re.compile(r"[_\-.]+")


# ── Projections ────────────────────────────────────────────────────────


@dataclass
class SmartAlert:
    id: Any
    severity: AlertSeverity
    type: AlertType
    title: str
    message: str
    impact: str | None
    action_label: str
    timestamp: Any
    metadata: dict[str, Any]
    source_record_id: str | None
    source_table: str | None
    event_type: str
    notice_only: bool = False


@dataclass
class SmartSuggestion:
    id: Any
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


@dataclass
class Classification:
    kind: Literal["alert", "suggestion"]
    value: SmartAlert | SmartSuggestion


@dataclass
class HealthReport:
    """Headline card for the most pressing financial event."""

    event_id: Any
    event_type: str
    title: str
    description: str
    recommended_action: str | None
    impact_label: str
    impact_value: float


@dataclass
class IntelligenceFeed:
    alerts: list[SmartAlert] = field(default_factory=list)
    suggestions: list[SmartSuggestion] = field(default_factory=list)
    raw_events: list[dict[str, Any]] = field(default_factory=list)
    loading: bool = False
    health_report: HealthReport | None = None


# ── Field mapping ──────────────────────────────────────────────────────


def map_severity(raw: Any) -> AlertSeverity:
    """Backend severity string → AlertSeverity; anything unrecognized is INFO."""
    if isinstance(raw, str):
        value = raw.strip().lower()
        if value == "critical":
            return AlertSeverity.CRITICAL
        if value == "warning":
            return AlertSeverity.WARNING
    return AlertSeverity.INFO


def map_category(raw: Any) -> AlertType:
    """Event category → AlertType; operational and unknown categories are ADMIN."""
    if isinstance(raw, str):
        return _CATEGORY_TYPES.get(raw.strip().lower(), AlertType.ADMIN)
    return AlertType.ADMIN


def humanize_event_type(event_type: Any) -> str:
    text = _SEPARATORS.sub(" ", str(event_type or "evento")).strip()
    return (text or "EVENTO").upper()


def build_title(event_type: Any, meta: Mapping[str, Any]) -> str:
    """Localized title, with the affected recipe or ingredient appended."""
    title = EVENT_TYPE_TITLES.get(event_type) if isinstance(event_type, str) else None
    if title is None:
        title = humanize_event_type(event_type)

    entity = meta_text(dict(meta), "recipe_name") or meta_text(dict(meta), "ingredient_name")
    if entity:
        title = f"{title} en {entity}"
    return title


def _impact_amount(raw: Any) -> float | None:
    """Absolute impact value, None when missing, zero or not numeric."""
    if raw is None or isinstance(raw, bool):
        return None
    try:
        parsed = float(raw)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(parsed) or parsed == 0:
        return None
    return abs(parsed)


def _join_text(*parts: Any) -> str:
    return " ".join(str(p).strip() for p in parts if p is not None and str(p).strip())


def _source_record_id(raw: Any) -> str | None:
    if raw is None:
        return None
    text = str(raw).strip()
    return text or None


# ── Classification ─────────────────────────────────────────────────────


def classify(raw_event: Mapping[str, Any]) -> Classification:
    """
    Project one raw system_events row into an Alert or a Suggestion.

    Never raises for any mapping: missing or mistyped fields fall back to defaults.
    """
    event_type = raw_event.get("event_type")
    event_type_key = event_type if isinstance(event_type, str) else str(event_type or "")
    event_id = raw_event.get("id")

    meta = parse_metadata(raw_event.get("metadata"), event_id=event_id).value_or_empty()
    source_record_id = _source_record_id(raw_event.get("source_record_id"))
    if source_record_id:
        meta["_source_record_id"] = source_record_id

    title = build_title(event_type_key, meta)
    impact_projection = str(raw_event.get("impact_projection") or "")
    recommended_action = str(raw_event.get("recommended_action") or "").strip() or None
    impact_amount = _impact_amount(raw_event.get("impact_value"))
    source_table = raw_event.get("source_table")

    if event_type_key in SUGGESTION_EVENT_TYPES:
        return Classification(
            kind="suggestion",
            value=SmartSuggestion(
                id=event_id,
                title=title,
                description=_join_text(impact_projection, recommended_action),
                action_label=SIMULATE_LABEL,
                impact_financial=format_money(impact_amount) if impact_amount is not None else None,
                category=str(raw_event.get("event_category") or "").strip().lower(),
                horizon="daily",
                metadata=meta,
                source_record_id=source_record_id,
                source_table=source_table,
                event_type=event_type_key,
            ),
        )

    notice_only = event_type_key in NOTICE_ONLY_EVENT_TYPES
    if notice_only:
        message = _join_text(impact_projection, recommended_action) or DEFAULT_ALERT_MESSAGE
        action_label = REVIEW_LABEL
    else:
        message = str(impact_projection).strip() or DEFAULT_ALERT_MESSAGE
        action_label = recommended_action or REVIEW_LABEL

    return Classification(
        kind="alert",
        value=SmartAlert(
            id=event_id,
            severity=map_severity(raw_event.get("severity")),
            type=map_category(raw_event.get("event_category")),
            title=title,
            message=message,
            impact=f"Impacto de {format_money(impact_amount)}" if impact_amount is not None else None,
            action_label=action_label,
            timestamp=raw_event.get("created_at"),
            metadata=meta,
            source_record_id=source_record_id,
            source_table=source_table,
            event_type=event_type_key,
            notice_only=notice_only,
        ),
    )


def normalize_events(raw_events: list[Mapping[str, Any]]) -> IntelligenceFeed:
    """Classify a batch of events, preserving input order within each list."""
    feed = IntelligenceFeed(raw_events=[dict(ev) for ev in raw_events])
    for raw_event in raw_events:
        result = classify(raw_event)
        if result.kind == "suggestion":
            feed.suggestions.append(result.value)
        else:
            feed.alerts.append(result.value)
    feed.health_report = build_health_report(raw_events)
    return feed


# ── Financial health report ────────────────────────────────────────────

HEALTH_EVENT_PRIORITY = ("efficiency_leak", "profit_deviation", "margin_drift")
DEFAULT_HEALTH_DESCRIPTION = (
    "El aumento en los costos no se ha visto reflejado en los ingresos o hay un desvío en el flujo de caja."
)


def build_health_report(raw_events: list[Mapping[str, Any]]) -> HealthReport | None:
    """
    Pick the most pressing unresolved financial event and headline it.

    Priority: efficiency_leak, then profit_deviation, then margin_drift.
    """
    chosen = None
    for event_type in HEALTH_EVENT_PRIORITY:
        chosen = next(
            (ev for ev in raw_events if ev.get("event_type") == event_type and not ev.get("resolved")),
            None,
        )
        if chosen is not None:
            break
    if chosen is None:
        return None

    event_type = chosen["event_type"]
    meta = parse_metadata(chosen.get("metadata"), event_id=chosen.get("id")).value_or_empty()
    impact_value = abs(_impact_amount(chosen.get("impact_value")) or 0.0)

    if event_type == "efficiency_leak":
        ratio = meta_number(meta, "ratio") or 0.5
        title = f"Fuga de eficiencia crítica: Los gastos representan el {ratio * 100:.0f}% de tus ventas."
        label = "GASTO MENSUAL"
        impact = meta_number(meta, "expenses") or 0.0
    elif event_type == "profit_deviation":
        expenses = meta_number(meta, "expenses")
        avg_expenses = meta_number(meta, "avg_expenses")
        if expenses is not None and avg_expenses and expenses > avg_expenses:
            title = (
                "Incremento de costos operativos detectado "
                f"({(expenses / avg_expenses - 1) * 100:.0f}% s/ promedio)."
            )
        else:
            trend = abs(meta_number(meta, "trend_pct") or 0.0)
            title = f"Tu margen operativo está en riesgo de desviación del {trend:.0f}%."
        label = "RIESGO"
        impact = -impact_value
    else:
        title = f"Margen crítico detectado en: {meta_text(meta, 'recipe_name') or 'Receta'}."
        label = "IMPACTO ESTIMADO"
        impact = -impact_value

    return HealthReport(
        event_id=chosen.get("id"),
        event_type=event_type,
        title=title,
        description=str(chosen.get("impact_projection") or "").strip() or DEFAULT_HEALTH_DESCRIPTION,
        recommended_action=chosen.get("recommended_action") or None,
        impact_label=label,
        impact_value=impact,
    )
