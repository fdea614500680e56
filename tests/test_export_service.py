"""
Report exporter tests — CSV quoting, column order, XLSX workbook.
"""

import csv
import io
from datetime import datetime, timezone

from openpyxl import load_workbook

from manpower.core.records import DepartmentRef, ForecastFilter, ForecastRecord, Period, UserRef
from manpower.services import export_service, scoring


def _record(*items, fid=1, dept=DepartmentRef(1, "Engineering", "ENG")):
    items = tuple(scoring.normalize_item(i) for i in items)
    return ForecastRecord(
        id=fid,
        department=dept,
        submitted_by=UserRef(5, "Alice Head"),
        period=Period(2025, 1),
        status="submitted",
        total_budget=sum(scoring.item_total_cost(i) for i in items),
        items=items,
    )


def _parse(text):
    return list(csv.reader(io.StringIO(text)))


class TestCsv:

    def test_header_and_row_order(self):
        text = export_service.export_rows_csv([
            _record({"position": "Engineer", "current_count": 2, "forecast_count": 5,
                     "salary_budget": 90000}),
        ])
        header, row = _parse(text)
        assert header == export_service.EXPORT_COLUMNS
        assert row == ["1", "Engineering", "ENG", "2025", "1", "Engineer", "FT",
                       "2", "5", "3", "90000", "submitted", "Alice Head", "27"]

    def test_rows_end_with_crlf(self):
        text = export_service.export_rows_csv([_record({"position": "A"})])
        assert text.count("\r\n") == 2
        assert text.endswith("\r\n")

    def test_embedded_quotes_commas_and_newlines_round_trip(self):
        position = 'Lead "Platform", Infra\nEngineer'
        dept = DepartmentRef(2, 'R&D, "Labs"', "RND")
        text = export_service.export_rows_csv([_record({"position": position}, dept=dept)])

        assert '"Lead ""Platform"", Infra\nEngineer"' in text
        _, row = _parse(text)
        assert row[1] == 'R&D, "Labs"'
        assert row[5] == position

    def test_one_row_per_item(self):
        records = [_record({"position": "A"}, {"position": "B"}), _record({"position": "C"}, fid=2)]
        rows = _parse(export_service.export_rows_csv(records))
        assert [r[5] for r in rows[1:]] == ["A", "B", "C"]
        assert [r[0] for r in rows[1:]] == ["1", "1", "2"]

    def test_empty_export_has_header_only(self):
        assert _parse(export_service.export_rows_csv([])) == [export_service.EXPORT_COLUMNS]

    def test_fractional_money_keeps_cents(self):
        _, row = _parse(export_service.export_rows_csv([_record({"position": "A", "salary_budget": 1234.5})]))
        assert row[10] == "1234.5"


class TestAdvancedCsv:

    def test_columns_and_values(self):
        text = export_service.export_advanced_csv([
            _record({
                "position": "Data Scientist",
                "current_average_salary": 50000,
                "market_benchmark_salary": 60000,
                "salary_budget": 300000,
                "forecast_count": 2,
                "skills": ["Python", "ML"],
                "justification": "New product line",
                "expected_start_month": "April",
            }),
        ])
        header, row = _parse(text)
        assert header == export_service.ADVANCED_EXPORT_COLUMNS
        values = dict(zip(header, row))
        assert values["Salary Gap %"] == "20.0"
        assert values["Predicted ROI"] == "1.0"
        assert values["Skills"] == "Python; ML"
        assert values["Strategic Priority"] == "Low"
        assert values["Expected Start Month"] == "April"


class TestXlsx:

    def test_two_sheets_with_rows(self):
        content = export_service.export_rows_xlsx([
            _record({"position": "Engineer"}, {"position": "Nurse", "recent_resignations": 20}),
        ])
        wb = load_workbook(io.BytesIO(content))
        assert wb.sheetnames == ["Workforce Report", "Advanced Analytics"]

        ws = wb["Workforce Report"]
        assert [c.value for c in ws[1]] == export_service.EXPORT_COLUMNS
        assert ws.max_row == 3
        assert ws.cell(row=2, column=6).value == "Engineer"
        risk_col = export_service.EXPORT_COLUMNS.index("Risk Score") + 1
        assert ws.cell(row=3, column=risk_col).fill.start_color.rgb.endswith("E74C3C")

        assert wb["Advanced Analytics"].max_row == 3


class TestFilename:

    def test_period_filter(self):
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        name = export_service.export_filename("workforce-report", ForecastFilter(year=2025, quarter=1), "csv", now)
        assert name == "workforce-report-2025-Q1-1735689600000.csv"

    def test_unfiltered(self):
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert export_service.export_filename("advanced-analytics", ForecastFilter(), "csv", now) \
            == "advanced-analytics-all-Qall-1735689600000.csv"
