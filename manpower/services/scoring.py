"""
Scoring engine — per-item risk and financial metrics.

Pure, stateless functions. Every function accepts anything
``normalize_item`` understands (ORM ``ForecastItem`` rows, plain dicts,
or ``NormalizedItem`` records) and substitutes the documented defaults
for missing optional fields: ratings default to 3, counts and money to 0.

Risk score
----------
Seven weighted factors over a fixed denominator of 345::

    f1 = historical_attrition_rate * 100
    f2 = recent_resignations * 10
    f3 = (5 - salary_competitiveness) * 10
    f4 = (5 - work_life_balance) * 8
    f5 = (5 - career_growth_opportunities) * 7
    f6 = critical_skills_gap * 8
    f7 = market_demand * 6
    score = round((f1 + ... + f7) / 345 * 100)

345 is the sum of nominal maxima (100+50+50+40+35+40+30); f3's nominal
50 assumes a rating of 0, so it is a headroom constant and not a bound
recomputed from the rating ranges. The score is not clamped afterwards:
``recent_resignations`` is unbounded, so scores above 100 are possible
and callers must tolerate them.
"""

from __future__ import annotations

import math
from collections.abc import Mapping

from manpower.core.records import NormalizedItem

RISK_DENOMINATOR = 345
VALUE_PER_HIRE = 150_000
RETENTION_SAVING_PER_HIRE = 50_000
COST_PER_HIRE_BENCHMARK = 75_000
BASE_TIME_TO_FILL_DAYS = 30

LOW_RISK_THRESHOLD = 30
MEDIUM_RISK_THRESHOLD = 60

_RATING_DEFAULT = 3


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives, like ``Math.round``."""
    return int(math.floor(value + 0.5))


def _num(value, default=0.0) -> float:
    if value is None or value == "":
        return float(default)
    try:
        return float(value)
    except (TypeError, ValueError):
        return float(default)


def _int(value, default=0) -> int:
    return int(_num(value, default))


def _rating(value) -> int:
    rating = _int(value, _RATING_DEFAULT)
    return rating if rating else _RATING_DEFAULT


def normalize_item(raw) -> NormalizedItem:
    """Produce a fully-defaulted ``NormalizedItem`` from any item shape."""
    if isinstance(raw, NormalizedItem):
        return raw
    if isinstance(raw, Mapping):
        get = raw.get
    else:
        def get(name, default=None):
            return getattr(raw, name, default)

    skills = get("skills") or ()
    if isinstance(skills, str):
        skills = [s.strip() for s in skills.split(",") if s.strip()]

    return NormalizedItem(
        position=str(get("position") or "").strip(),
        workforce_type=str(get("workforce_type") or "FT"),
        current_count=_int(get("current_count")),
        forecast_count=_int(get("forecast_count")),
        salary_budget=_num(get("salary_budget")),
        one_time_cost=_num(get("one_time_cost")),
        cost_per_hire=_num(get("cost_per_hire")),
        current_average_salary=_num(get("current_average_salary")),
        market_benchmark_salary=_num(get("market_benchmark_salary")),
        historical_attrition_rate=_num(get("historical_attrition_rate")),
        recent_resignations=_int(get("recent_resignations")),
        critical_skills_gap=_rating(get("critical_skills_gap")),
        market_demand=_rating(get("market_demand")),
        salary_competitiveness=_rating(get("salary_competitiveness")),
        work_life_balance=_rating(get("work_life_balance")),
        career_growth_opportunities=_rating(get("career_growth_opportunities")),
        skills=tuple(str(s) for s in skills),
        expected_start_month=str(get("expected_start_month") or ""),
        justification=str(get("justification") or ""),
        grade_level=str(get("grade_level") or "N/A"),
        employee_type=str(get("employee_type") or "Permanent"),
        location=str(get("location") or "Head Office"),
    )


# ═══════════════════════════════════════════════════════════════════════════
#  Risk
# ═══════════════════════════════════════════════════════════════════════════

def risk_factors(item) -> tuple[float, ...]:
    """The seven weighted factors.

    Validated ratings keep each factor under its natural maximum; only
    ``recent_resignations`` can push f2 past its nominal 50.
    """
    it = normalize_item(item)
    return (
        it.historical_attrition_rate * 100,
        it.recent_resignations * 10,
        (5 - it.salary_competitiveness) * 10,
        (5 - it.work_life_balance) * 8,
        (5 - it.career_growth_opportunities) * 7,
        it.critical_skills_gap * 8,
        it.market_demand * 6,
    )


def item_risk_score(item) -> int:
    """Composite 0–100ish risk score for one item (see module docstring)."""
    return round_half_up(sum(risk_factors(item)) / RISK_DENOMINATOR * 100)


def attrition_risk_bucket(score: int) -> str:
    """Bucket a risk score: <30 low, <60 medium, else high."""
    if score < LOW_RISK_THRESHOLD:
        return "low"
    if score < MEDIUM_RISK_THRESHOLD:
        return "medium"
    return "high"


def item_attrition_risk(item) -> str:
    """Attrition bucket keyed to the same score ``item_risk_score`` returns."""
    return attrition_risk_bucket(item_risk_score(item))


def strategic_priority(score: int) -> str:
    if score > 70:
        return "High"
    if score > 50:
        return "Medium"
    return "Low"


# ═══════════════════════════════════════════════════════════════════════════
#  Financials
# ═══════════════════════════════════════════════════════════════════════════

def salary_gap_percent(item) -> float:
    """Market benchmark vs current average salary, in percent; 0 when the
    current average is 0."""
    it = normalize_item(item)
    if it.current_average_salary == 0:
        return 0.0
    return (it.market_benchmark_salary - it.current_average_salary) / it.current_average_salary * 100


def predicted_roi(item) -> float:
    it = normalize_item(item)
    if it.salary_budget > 0:
        return (it.forecast_count * VALUE_PER_HIRE) / it.salary_budget
    return 0.0


def estimated_time_to_fill_days(item) -> int:
    it = normalize_item(item)
    return round_half_up(
        BASE_TIME_TO_FILL_DAYS * (it.critical_skills_gap / 3) * (it.market_demand / 3)
    )


def budget_efficiency(avg_cost_per_hire: float) -> float:
    """Cost-per-hire efficiency against the 75k industry benchmark, floored at 0."""
    return max(100 - avg_cost_per_hire / COST_PER_HIRE_BENCHMARK * 100, 0.0)


def item_variance(item) -> int:
    """Net headcount change: forecast minus current."""
    it = normalize_item(item)
    return it.forecast_count - it.current_count


def item_total_cost(item) -> float:
    it = normalize_item(item)
    return it.salary_budget + it.one_time_cost + it.cost_per_hire
