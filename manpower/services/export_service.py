"""
Report exporter — flat tabular projections of forecast records.

One row per forecast item. Column order is fixed by ``EXPORT_COLUMNS``
(and ``ADVANCED_EXPORT_COLUMNS``) so exports diff cleanly between runs.
CSV output follows RFC 4180: text fields are quoted, embedded quotes are
doubled, rows end with CRLF.
"""

import csv
import io
import logging
from datetime import datetime

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from manpower.core.records import ForecastFilter, ForecastRecord
from manpower.services import scoring

logger = logging.getLogger(__name__)

HEADER_FILL = PatternFill(start_color="354A5F", end_color="354A5F", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)
RISK_FILLS = {
    "low": PatternFill(start_color="27AE60", end_color="27AE60", fill_type="solid"),
    "medium": PatternFill(start_color="F39C12", end_color="F39C12", fill_type="solid"),
    "high": PatternFill(start_color="E74C3C", end_color="E74C3C", fill_type="solid"),
}

EXPORT_COLUMNS = [
    "Forecast ID",
    "Department",
    "Department Code",
    "Year",
    "Quarter",
    "Position",
    "Workforce Type",
    "Current Count",
    "Forecast Count",
    "Variance",
    "Salary Budget",
    "Status",
    "Submitted By",
    "Risk Score",
]

ADVANCED_EXPORT_COLUMNS = [
    "Department",
    "Position",
    "Risk Score",
    "Attrition Risk %",
    "Salary Gap %",
    "Skills Gap (1-5)",
    "Market Demand (1-5)",
    "Work-Life Balance (1-5)",
    "Career Growth (1-5)",
    "Predicted ROI",
    "Current Count",
    "Forecast Count",
    "Variance",
    "Salary Budget",
    "One-time Cost",
    "Recruitment Cost",
    "Expected Start Month",
    "Skills",
    "Justification",
    "Strategic Priority",
]


def _money(value: float):
    """Whole amounts render without a trailing ``.0``."""
    return int(value) if float(value).is_integer() else round(value, 2)


def export_rows(records: list[ForecastRecord]) -> list[list]:
    """Rows (without header) in ``EXPORT_COLUMNS`` order."""
    rows = []
    for r in records:
        for item in r.items:
            rows.append([
                r.id,
                r.department.name,
                r.department.code,
                r.period.year,
                r.period.quarter,
                item.position,
                item.workforce_type,
                item.current_count,
                item.forecast_count,
                scoring.item_variance(item),
                _money(item.salary_budget),
                r.status,
                r.submitted_by.name,
                scoring.item_risk_score(item),
            ])
    return rows


def advanced_rows(records: list[ForecastRecord]) -> list[list]:
    """Rows (without header) in ``ADVANCED_EXPORT_COLUMNS`` order."""
    rows = []
    for r in records:
        for item in r.items:
            score = scoring.item_risk_score(item)
            rows.append([
                r.department.name,
                item.position,
                score,
                item.historical_attrition_rate,
                round(scoring.salary_gap_percent(item), 2),
                item.critical_skills_gap,
                item.market_demand,
                item.work_life_balance,
                item.career_growth_opportunities,
                round(scoring.predicted_roi(item), 2),
                item.current_count,
                item.forecast_count,
                scoring.item_variance(item),
                _money(item.salary_budget),
                _money(item.one_time_cost),
                _money(item.cost_per_hire),
                item.expected_start_month,
                "; ".join(item.skills),
                item.justification,
                scoring.strategic_priority(score),
            ])
    return rows


def _to_csv(header: list[str], rows: list[list]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\r\n")
    writer.writerow(header)
    writer.writerows(rows)
    return buf.getvalue()


def export_rows_csv(records: list[ForecastRecord]) -> str:
    """Workforce report CSV: header row plus one row per item."""
    return _to_csv(EXPORT_COLUMNS, export_rows(records))


def export_advanced_csv(records: list[ForecastRecord]) -> str:
    """Analytics CSV with risk drivers, ROI and strategic priority per item."""
    return _to_csv(ADVANCED_EXPORT_COLUMNS, advanced_rows(records))


def _apply_header_style(ws, row: int, col_count: int) -> None:
    """Apply dark-header styling to an Excel row (1-indexed)."""
    for col in range(1, col_count + 1):
        cell = ws.cell(row=row, column=col)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)


def _auto_width(ws) -> None:
    """Auto-size column widths based on content (capped at 60 chars)."""
    for col in ws.columns:
        max_len = 0
        col_letter = get_column_letter(col[0].column)
        for cell in col:
            if cell.value:
                max_len = max(max_len, min(len(str(cell.value)), 60))
        ws.column_dimensions[col_letter].width = max(max_len + 4, 12)


def export_rows_xlsx(records: list[ForecastRecord], title: str = "Workforce Report") -> bytes:
    """
    Styled Excel workbook: the workforce report on sheet 1, the advanced
    analytics columns on sheet 2. Risk Score cells are filled by bucket.
    """
    wb = Workbook()

    ws = wb.active
    ws.title = "Workforce Report"
    ws.append(EXPORT_COLUMNS)
    _apply_header_style(ws, 1, len(EXPORT_COLUMNS))
    risk_col = EXPORT_COLUMNS.index("Risk Score") + 1
    for row in export_rows(records):
        ws.append(row)
        cell = ws.cell(row=ws.max_row, column=risk_col)
        cell.fill = RISK_FILLS[scoring.attrition_risk_bucket(row[risk_col - 1])]
        cell.alignment = Alignment(horizontal="center")
    ws.freeze_panes = "A2"
    _auto_width(ws)

    ws2 = wb.create_sheet("Advanced Analytics")
    ws2.append(ADVANCED_EXPORT_COLUMNS)
    _apply_header_style(ws2, 1, len(ADVANCED_EXPORT_COLUMNS))
    for row in advanced_rows(records):
        ws2.append(row)
    ws2.freeze_panes = "A2"
    _auto_width(ws2)

    wb.properties.title = title
    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf.getvalue()


def export_filename(kind: str, flt: ForecastFilter, ext: str, now: datetime) -> str:
    """e.g. ``workforce-report-2025-Q1-1735689600000.csv``."""
    return f"{kind}-{flt.describe()}-{int(now.timestamp() * 1000)}.{ext}"
