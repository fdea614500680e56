"""
Forecast aggregator tests — summaries, department rollups, analytics.

Works on hand-built ForecastRecord snapshots; no database needed.
"""

import pytest

from manpower.core.records import DepartmentRef, ForecastRecord, Period, UserRef
from manpower.services import aggregation, scoring


ENG = DepartmentRef(1, "Engineering", "ENG")
SAL = DepartmentRef(2, "Sales", "SAL")
ALICE = UserRef(10, "Alice Head", "alice@example.com")


def _item(**kw):
    return scoring.normalize_item({"position": "Engineer", **kw})


def _record(fid, dept=ENG, status="submitted", items=(), period=Period(2025, 1)):
    items = tuple(items)
    return ForecastRecord(
        id=fid,
        department=dept,
        submitted_by=ALICE,
        period=period,
        status=status,
        total_budget=sum(scoring.item_total_cost(i) for i in items),
        items=items,
    )


class TestSummarize:

    def test_empty(self):
        summary = aggregation.summarize([], total_departments=3)
        assert summary["total_forecasts"] == 0
        assert summary["average_risk_score"] == 0
        assert summary["average_historical_attrition"] == 0
        assert summary["total_departments"] == 3
        assert aggregation.status_distribution(summary) == []

    def test_counts_and_totals(self):
        forecasts = [
            _record(1, status="submitted", items=[
                _item(forecast_count=3, salary_budget=1000, one_time_cost=100, cost_per_hire=50,
                      historical_attrition_rate=0.1),
            ]),
            _record(2, dept=SAL, status="approved", items=[
                _item(forecast_count=2, salary_budget=500, historical_attrition_rate=0.3),
            ]),
            _record(3, status="draft"),
        ]
        summary = aggregation.summarize(forecasts)

        assert summary["total_forecasts"] == 3
        assert summary["submitted_forecasts"] == 1
        assert summary["approved_forecasts"] == 1
        assert summary["draft_forecasts"] == 1
        assert summary["total_positions"] == 5
        assert summary["total_budget"] == pytest.approx(1650)
        assert summary["total_one_time_costs"] == pytest.approx(100)
        assert summary["total_recruitment_costs"] == pytest.approx(50)
        assert summary["average_historical_attrition"] == 20
        assert "total_departments" not in summary

    def test_status_distribution_skips_empty_slices(self):
        summary = aggregation.summarize([_record(1, status="approved"), _record(2, status="approved")])
        assert aggregation.status_distribution(summary) == [
            {"name": "Approved", "value": 2, "color": "#00C49F"},
        ]


class TestByDepartment:

    def test_running_average_over_all_items(self):
        low = _item()                                    # 27
        high = _item(recent_resignations=10)              # (92 + 100) / 345 → 56
        forecasts = [
            _record(1, items=[low, low, low], period=Period(2025, 1)),
            _record(2, items=[high], period=Period(2025, 2)),
        ]
        forward = aggregation.by_department(forecasts)
        backward = aggregation.by_department(list(reversed(forecasts)))

        assert forward == backward
        (eng,) = forward
        assert eng["item_count"] == 4
        assert eng["total_forecasts"] == 2
        assert eng["risk_score"] == scoring.round_half_up((27 * 3 + 56) / 4)

    def test_sorted_by_name_with_variance(self):
        forecasts = [
            _record(1, dept=SAL, items=[_item(current_count=5, forecast_count=2)]),
            _record(2, dept=ENG, items=[_item(current_count=1, forecast_count=4)]),
        ]
        rows = aggregation.by_department(forecasts)
        assert [r["department"]["name"] for r in rows] == ["Engineering", "Sales"]
        assert rows[0]["variance"] == 3
        assert rows[1]["variance"] == -3

    def test_department_without_items(self):
        (row,) = aggregation.by_department([_record(1)])
        assert row["risk_score"] == 0
        assert row["attrition_risk"] == 0


class TestFlattenItems:

    def test_one_row_per_item_with_context(self):
        rows = aggregation.flatten_items([_record(7, items=[_item(), _item(position="QA")])])
        assert len(rows) == 2
        assert rows[1]["position"] == "QA"
        assert rows[0]["forecast_id"] == 7
        assert rows[0]["department_code"] == "ENG"
        assert rows[0]["risk_score"] == 27
        assert rows[0]["attrition_risk"] == "low"
        assert rows[0]["quarter"] == 1


class TestAnalytics:

    def test_attrition_prediction_labels_and_confidence(self):
        series = aggregation.attrition_prediction([_item(historical_attrition_rate=0.1)],
                                                  start=(2025, 11))
        assert [p["month"] for p in series] == [
            "Nov 2025", "Dec 2025", "Jan 2026", "Feb 2026", "Mar 2026", "Apr 2026",
        ]
        assert [p["confidence"] for p in series] == [90, 87, 84, 81, 78, 75]
        # baseline 10, risk 30 → 10 * 1.2 * 1.30 * 1 * 0.3 = 4.68
        assert series[0]["predicted"] == 5
        assert series[0]["current"] == 2

    def test_attrition_prediction_without_items(self):
        series = aggregation.attrition_prediction([])
        assert series[0]["month"] == "Month 1"
        assert all(p["predicted"] == 0 for p in series)

    def test_radar_is_clamped(self):
        radar = aggregation.risk_factor_radar([
            _item(current_average_salary=10000, market_benchmark_salary=90000,
                  recent_resignations=50),
        ])
        values = {r["factor"]: r["value"] for r in radar}
        assert values["Salary Gap"] == 100
        assert values["Job Security"] == 100
        assert values["Skills Shortage"] == 60
        assert values["Work-Life Balance"] == 50
        assert all(r["full_mark"] == 100 for r in radar)

    def test_radar_ignores_negative_salary_gap(self):
        radar = aggregation.risk_factor_radar([
            _item(current_average_salary=80000, market_benchmark_salary=60000),
        ])
        assert radar[0] == {"factor": "Salary Gap", "value": 0.0, "full_mark": 100}

    def test_growth_trend_walks_back_five_quarters(self):
        loaded = []

        def load(period):
            loaded.append(period)
            if period == Period(2024, 4):
                return [_record(1, items=[_item(forecast_count=4, salary_budget=8000)])]
            return []

        trend = aggregation.growth_trend(load, Period(2025, 2))
        assert [t["period"] for t in trend] == ["Q2 2024", "Q3 2024", "Q4 2024", "Q1 2025", "Q2 2025"]
        assert trend[2]["positions"] == 4
        assert trend[2]["budget"] == pytest.approx(8.0)
        assert trend[2]["risk_score"] == 27
        assert trend[0]["risk_score"] == 0
        assert len(loaded) == 5

    def test_strategic_score_empty(self):
        # 100 - 0 + 0 + 100 * 0.3
        assert aggregation.strategic_score([], []) == 130

    def test_strategic_score(self):
        forecasts = [_record(1, status="approved", items=[_item(cost_per_hire=75000)]),
                     _record(2, status="submitted")]
        items = aggregation.all_items(forecasts)
        # 100 - 27 * 0.4 + 50 * 0.3 + 0 = 104.2
        assert aggregation.strategic_score(items, forecasts) == 104

    def test_roi_analysis(self):
        roi = aggregation.roi_analysis([
            _item(forecast_count=2, salary_budget=100000, historical_attrition_rate=0.5),
        ])
        assert roi["total_investment"] == pytest.approx(100000)
        assert roi["estimated_returns"] == pytest.approx(2 * 150000 + 2 * 0.5 * 50000)
        assert roi["avg_roi"] == 3.5
        assert aggregation.roi_analysis([])["avg_roi"] == 0

    def test_priorities(self):
        items = [_item(critical_skills_gap=5), _item(critical_skills_gap=4), _item()]
        actions = {p["action"]: p for p in aggregation.priorities(items)}
        skills = actions["Address Critical Skills Gap"]
        assert skills["urgency"] == "High"
        assert skills["impact"] == pytest.approx(66.7)
        assert actions["High-Risk Position Retention"]["urgency"] == "Low"
        assert actions["Process Optimization"]["impact"] == 45

    def test_priorities_without_items(self):
        assert all(p["impact"] in (0, 45) for p in aggregation.priorities([]))

    def test_advanced_payload_keys(self):
        payload = aggregation.advanced_analytics([], lambda p: [], Period(2025, 1))
        assert set(payload) == {
            "strategic_score", "avg_roi", "roi", "avg_time_to_fill",
            "attrition_prediction", "risk_factors", "growth_trend", "priorities",
        }
        assert payload["avg_time_to_fill"] == 0
