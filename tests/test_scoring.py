"""
Scoring engine tests — risk factors, buckets, financial metrics.

Pure functions; no database needed.
"""

import pytest

from manpower.core.records import NormalizedItem
from manpower.services import scoring


class TestNormalizeItem:

    def test_defaults_for_missing_fields(self):
        item = scoring.normalize_item({"position": "Analyst"})
        assert item.current_count == 0
        assert item.salary_budget == 0.0
        assert item.critical_skills_gap == 3
        assert item.career_growth_opportunities == 3
        assert item.workforce_type == "FT"

    def test_zero_rating_is_treated_as_default(self):
        item = scoring.normalize_item({"position": "Analyst", "market_demand": 0})
        assert item.market_demand == 3

    def test_accepts_objects_with_attributes(self):
        class Row:
            position = "Nurse"
            forecast_count = 2
            salary_budget = "1000.50"

        item = scoring.normalize_item(Row())
        assert item.forecast_count == 2
        assert item.salary_budget == 1000.5

    def test_passes_normalized_items_through(self):
        item = NormalizedItem(position="X")
        assert scoring.normalize_item(item) is item

    def test_comma_separated_skills(self):
        item = scoring.normalize_item({"skills": "Python, SQL ,"})
        assert item.skills == ("Python", "SQL")


class TestRiskScore:

    def test_neutral_item_scores_27(self):
        # 20 + 16 + 14 + 24 + 18 = 92 → 92 / 345 * 100 = 26.67
        assert scoring.item_risk_score({}) == 27

    def test_factor_weights(self):
        factors = scoring.risk_factors({
            "historical_attrition_rate": 0.2,
            "recent_resignations": 2,
            "salary_competitiveness": 1,
            "work_life_balance": 2,
            "career_growth_opportunities": 4,
            "critical_skills_gap": 5,
            "market_demand": 4,
        })
        assert factors == pytest.approx((20, 20, 40, 24, 7, 40, 24))

    def test_score_can_exceed_100(self):
        item = {
            "historical_attrition_rate": 1.0,
            "recent_resignations": 20,
            "salary_competitiveness": 1,
            "work_life_balance": 1,
            "career_growth_opportunities": 1,
            "critical_skills_gap": 5,
            "market_demand": 5,
        }
        # 100 + 200 + 40 + 32 + 28 + 40 + 30 = 470
        assert scoring.item_risk_score(item) == 136
        assert scoring.item_attrition_risk(item) == "high"

    def test_half_rounds_up(self):
        assert scoring.round_half_up(26.5) == 27
        assert scoring.round_half_up(0.5) == 1
        assert scoring.round_half_up(2.4999) == 2

    @pytest.mark.parametrize("score,bucket", [
        (0, "low"), (29, "low"), (30, "medium"), (59, "medium"), (60, "high"), (140, "high"),
    ])
    def test_buckets(self, score, bucket):
        assert scoring.attrition_risk_bucket(score) == bucket

    @pytest.mark.parametrize("score,priority", [(71, "High"), (70, "Medium"), (51, "Medium"), (50, "Low")])
    def test_strategic_priority(self, score, priority):
        assert scoring.strategic_priority(score) == priority


class TestFinancials:

    def test_salary_gap_percent(self):
        item = {"current_average_salary": 50000, "market_benchmark_salary": 60000}
        assert scoring.salary_gap_percent(item) == pytest.approx(20.0)

    def test_salary_gap_is_zero_without_current_salary(self):
        assert scoring.salary_gap_percent({"market_benchmark_salary": 60000}) == 0.0

    def test_predicted_roi(self):
        assert scoring.predicted_roi({"forecast_count": 2, "salary_budget": 100000}) == pytest.approx(3.0)
        assert scoring.predicted_roi({"forecast_count": 2}) == 0.0

    def test_time_to_fill(self):
        assert scoring.estimated_time_to_fill_days({}) == 30
        assert scoring.estimated_time_to_fill_days(
            {"critical_skills_gap": 5, "market_demand": 5}) == 83

    def test_budget_efficiency_floors_at_zero(self):
        assert scoring.budget_efficiency(0) == 100
        assert scoring.budget_efficiency(37500) == pytest.approx(50.0)
        assert scoring.budget_efficiency(200000) == 0.0

    def test_variance_and_total_cost(self):
        item = {"current_count": 5, "forecast_count": 3,
                "salary_budget": 100, "one_time_cost": 20, "cost_per_hire": 5}
        assert scoring.item_variance(item) == -2
        assert scoring.item_total_cost(item) == pytest.approx(125.0)
