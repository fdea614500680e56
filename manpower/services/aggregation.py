"""
Manpower Forecast Platform
Forecast aggregator — department/quarter rollups and analytics payloads.

Consumes resolved ``ForecastRecord`` snapshots (never ORM rows), so every
function here is deterministic for a given input list. Per-item numbers
come from ``manpower.services.scoring``; this module only folds them.

Rollups:
    - summarize: portfolio-wide counts and totals
    - status_distribution: chart slices for the dashboard
    - by_department: running (sum, count) accumulator per department
    - flatten_items: one row per item, used by reports and exports

Analytics:
    - attrition_prediction, risk_factor_radar, growth_trend,
      strategic_score, roi_analysis, average_time_to_fill, priorities
"""

from __future__ import annotations

import calendar
from dataclasses import asdict, dataclass
from typing import Callable, Iterable

from manpower.core.records import ForecastRecord, NormalizedItem, Period
from manpower.models.forecast import FORECAST_STATUSES, STATUS_APPROVED
from manpower.services import scoring

SEASONAL_MULTIPLIERS = (1.2, 1.1, 1.3, 1.0, 0.9, 1.1)

_STATUS_COLORS = {
    "submitted": "#0088FE",
    "approved": "#00C49F",
    "rejected": "#FF8042",
    "reviewed": "#8884D8",
    "draft": "#FFBB28",
}


def _mean(values: Iterable[float]) -> float | None:
    values = list(values)
    if not values:
        return None
    return sum(values) / len(values)


def all_items(forecasts: Iterable[ForecastRecord]) -> list[NormalizedItem]:
    return [item for f in forecasts for item in f.items]


# ═══════════════════════════════════════════════════════════════════════════
#  Rollups
# ═══════════════════════════════════════════════════════════════════════════

def summarize(forecasts: list[ForecastRecord], total_departments: int | None = None) -> dict:
    """Portfolio summary: counts by status plus budget and risk totals."""
    items = all_items(forecasts)
    counts = {status: 0 for status in FORECAST_STATUSES}
    for f in forecasts:
        counts[f.status] = counts.get(f.status, 0) + 1

    mean_risk = _mean(scoring.item_risk_score(i) for i in items)
    mean_attrition = _mean(i.historical_attrition_rate for i in items)

    summary = {
        "total_forecasts": len(forecasts),
        "status_counts": counts,
        "submitted_forecasts": counts["submitted"],
        "reviewed_forecasts": counts["reviewed"],
        "approved_forecasts": counts["approved"],
        "rejected_forecasts": counts["rejected"],
        "draft_forecasts": counts["draft"],
        "total_positions": sum(i.forecast_count for i in items),
        "total_budget": sum(f.total_budget for f in forecasts),
        "total_one_time_costs": sum(i.one_time_cost for i in items),
        "total_recruitment_costs": sum(i.cost_per_hire for i in items),
        "average_risk_score": scoring.round_half_up(mean_risk) if mean_risk is not None else 0,
        "average_historical_attrition": (
            scoring.round_half_up(mean_attrition * 100) if mean_attrition is not None else 0
        ),
    }
    if total_departments is not None:
        summary["total_departments"] = total_departments
    return summary


def status_distribution(summary: dict) -> list[dict]:
    """Non-empty status slices for the dashboard pie chart."""
    slices = []
    for status in ("submitted", "approved", "rejected", "reviewed", "draft"):
        value = summary["status_counts"].get(status, 0)
        if value > 0:
            slices.append({"name": status.capitalize(), "value": value,
                           "color": _STATUS_COLORS[status]})
    return slices


@dataclass
class _DepartmentAccumulator:
    department_id: int
    name: str
    code: str
    total_forecasts: int = 0
    total_budget: float = 0.0
    total_positions: int = 0
    variance: int = 0
    risk_sum: int = 0
    attrition_sum: float = 0.0
    item_count: int = 0

    def add(self, forecast: ForecastRecord) -> None:
        self.total_forecasts += 1
        self.total_budget += forecast.total_budget
        for item in forecast.items:
            self.total_positions += item.forecast_count
            self.variance += item.forecast_count - item.current_count
            self.risk_sum += scoring.item_risk_score(item)
            self.attrition_sum += item.historical_attrition_rate
            self.item_count += 1

    def to_dict(self) -> dict:
        risk = attrition = 0
        if self.item_count:
            risk = scoring.round_half_up(self.risk_sum / self.item_count)
            attrition = scoring.round_half_up(self.attrition_sum / self.item_count * 100)
        return {
            "department": {"id": self.department_id, "name": self.name, "code": self.code},
            "total_forecasts": self.total_forecasts,
            "total_budget": self.total_budget,
            "total_positions": self.total_positions,
            "variance": self.variance,
            "risk_score": risk,
            "attrition_risk": attrition,
            "item_count": self.item_count,
        }


def by_department(forecasts: Iterable[ForecastRecord]) -> list[dict]:
    """
    Department rollups.

    Risk and attrition are running averages over every item of every
    forecast in the department, so the result does not depend on the
    order forecasts arrive in.
    """
    acc: dict[int, _DepartmentAccumulator] = {}
    for f in forecasts:
        dept = f.department
        if dept.id not in acc:
            acc[dept.id] = _DepartmentAccumulator(dept.id, dept.name, dept.code)
        acc[dept.id].add(f)
    ordered = sorted(acc.values(), key=lambda a: (a.name, a.department_id))
    return [a.to_dict() for a in ordered]


def flatten_items(forecasts: Iterable[ForecastRecord]) -> list[dict]:
    """One row per item, decorated with its forecast's context and scores."""
    rows = []
    for f in forecasts:
        for item in f.items:
            row = asdict(item)
            row["skills"] = list(item.skills)
            score = scoring.item_risk_score(item)
            row.update({
                "forecast_id": f.id,
                "department": f.department.name,
                "department_code": f.department.code,
                "submitted_by": f.submitted_by.name,
                "status": f.status,
                "year": f.period.year,
                "quarter": f.period.quarter,
                "risk_score": score,
                "attrition_risk": scoring.attrition_risk_bucket(score),
                "variance": item.forecast_count - item.current_count,
            })
            rows.append(row)
    return rows


# ═══════════════════════════════════════════════════════════════════════════
#  Analytics
# ═══════════════════════════════════════════════════════════════════════════

def _month_label(start: tuple[int, int] | None, offset: int) -> str:
    if start is None:
        return f"Month {offset + 1}"
    year, month = start
    month_index = month - 1 + offset
    year += month_index // 12
    return f"{calendar.month_abbr[month_index % 12 + 1]} {year}"


def attrition_prediction(items: list[NormalizedItem], months_ahead: int = 6,
                         start: tuple[int, int] | None = None) -> list[dict]:
    """
    Monthly attrition projection.

    ``start`` is the (year, month) of the first projected month; it only
    affects labels. An empty item set projects a zero baseline.
    """
    mean_rate = _mean(i.historical_attrition_rate for i in items) or 0.0
    mean_risk = _mean(scoring.item_risk_score(i) for i in items) or 0.0
    baseline = mean_rate * 100
    risk_factor = mean_risk / 100

    series = []
    for i in range(months_ahead):
        seasonal = SEASONAL_MULTIPLIERS[i % len(SEASONAL_MULTIPLIERS)]
        series.append({
            "month": _month_label(start, i),
            "predicted": scoring.round_half_up(baseline * seasonal * (1 + risk_factor) * (i + 1) * 0.3),
            "current": scoring.round_half_up(baseline * (i + 1) * 0.2),
            "confidence": max(90 - i * 3, 70),
        })
    return series


def _clamp_pct(value: float) -> float:
    return round(min(max(value, 0.0), 100.0), 1)


def risk_factor_radar(items: list[NormalizedItem]) -> list[dict]:
    """Six-axis radar of mean risk drivers, each scaled into 0–100."""
    if not items:
        factors = {name: 0.0 for name in (
            "Salary Gap", "Skills Shortage", "Market Demand",
            "Work-Life Balance", "Career Growth", "Job Security",
        )}
    else:
        positive_gap = _mean(max(scoring.salary_gap_percent(i), 0.0) for i in items)
        factors = {
            "Salary Gap": positive_gap * 2,
            "Skills Shortage": _mean(i.critical_skills_gap for i in items) * 20,
            "Market Demand": _mean(i.market_demand for i in items) * 20,
            "Work-Life Balance": (5 - _mean(i.work_life_balance for i in items)) * 25,
            "Career Growth": (5 - _mean(i.career_growth_opportunities for i in items)) * 25,
            "Job Security": _mean(i.recent_resignations for i in items) * 10,
        }
    return [
        {"factor": name, "value": _clamp_pct(value), "full_mark": 100}
        for name, value in factors.items()
    ]


def growth_trend(load_period: Callable[[Period], list[ForecastRecord]],
                 period: Period, lookback: int = 5) -> list[dict]:
    """
    Positions, budget (in thousands) and mean risk for the ``lookback``
    quarters ending at ``period``, oldest first.
    """
    trend = []
    for back in range(lookback - 1, -1, -1):
        p = period.shift(-back)
        forecasts = load_period(p)
        items = all_items(forecasts)
        mean_risk = _mean(scoring.item_risk_score(i) for i in items)
        trend.append({
            "period": p.label,
            "positions": sum(i.forecast_count for i in items),
            "budget": sum(f.total_budget for f in forecasts) / 1000,
            "risk_score": round(mean_risk, 1) if mean_risk is not None else 0,
        })
    return trend


def approval_rate(forecasts: list[ForecastRecord]) -> float:
    if not forecasts:
        return 0.0
    approved = sum(1 for f in forecasts if f.status == STATUS_APPROVED)
    return approved / len(forecasts) * 100


def strategic_score(items: list[NormalizedItem], forecasts: list[ForecastRecord]) -> int:
    """100 − 0.4·risk + 0.3·approval rate + 0.3·budget efficiency."""
    mean_risk = _mean(scoring.item_risk_score(i) for i in items) or 0.0
    avg_cost_per_hire = _mean(i.cost_per_hire for i in items) or 0.0
    efficiency = scoring.budget_efficiency(avg_cost_per_hire)
    return scoring.round_half_up(
        100 - mean_risk * 0.4 + approval_rate(forecasts) * 0.3 + efficiency * 0.3
    )


def roi_analysis(items: list[NormalizedItem]) -> dict:
    total_investment = sum(scoring.item_total_cost(i) for i in items)
    estimated_returns = sum(
        i.forecast_count * scoring.VALUE_PER_HIRE
        + i.forecast_count * (1 - i.historical_attrition_rate) * scoring.RETENTION_SAVING_PER_HIRE
        for i in items
    )
    avg_roi = round(estimated_returns / total_investment, 1) if total_investment > 0 else 0
    return {
        "avg_roi": avg_roi,
        "total_investment": total_investment,
        "estimated_returns": estimated_returns,
    }


def average_time_to_fill(items: list[NormalizedItem]) -> int:
    mean_days = _mean(
        scoring.BASE_TIME_TO_FILL_DAYS * (i.critical_skills_gap / 3) * (i.market_demand / 3)
        for i in items
    )
    return scoring.round_half_up(mean_days) if mean_days is not None else 0


def priorities(items: list[NormalizedItem]) -> list[dict]:
    """Recommended actions ranked by how much of the item base they touch."""
    n = len(items)

    def share(count: int, cap: float) -> float:
        return round(min(count / n * 100, cap), 1) if n else 0

    high_risk = sum(1 for i in items if scoring.item_risk_score(i) > 70)
    salary_gap = sum(1 for i in items if scoring.salary_gap_percent(i) > 15)
    skills_gap = sum(1 for i in items if i.critical_skills_gap >= 4)

    return [
        {
            "action": "Address Critical Skills Gap",
            "urgency": "High" if skills_gap > n * 0.3 else "Medium",
            "impact": share(skills_gap, 95),
        },
        {
            "action": "Salary Market Adjustment",
            "urgency": "High" if salary_gap > n * 0.2 else "Medium",
            "impact": share(salary_gap, 85),
        },
        {
            "action": "High-Risk Position Retention",
            "urgency": "High" if high_risk > 0 else "Low",
            "impact": share(high_risk, 90),
        },
        {"action": "Process Optimization", "urgency": "Low", "impact": 45},
    ]


def advanced_analytics(forecasts: list[ForecastRecord],
                       load_period: Callable[[Period], list[ForecastRecord]],
                       period: Period,
                       start: tuple[int, int] | None = None) -> dict:
    """Full analytics payload for the dashboard's advanced tab."""
    items = all_items(forecasts)
    roi = roi_analysis(items)
    return {
        "strategic_score": strategic_score(items, forecasts),
        "avg_roi": roi["avg_roi"],
        "roi": roi,
        "avg_time_to_fill": average_time_to_fill(items),
        "attrition_prediction": attrition_prediction(items, start=start),
        "risk_factors": risk_factor_radar(items),
        "growth_trend": growth_trend(load_period, period),
        "priorities": priorities(items),
    }
