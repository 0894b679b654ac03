"""
report_builder.py — Excel export of the subject analysis tab.

Generates a workbook with:
- Subjects sheet   (one row per subject, pass-rate colour bands)
- Breakdown sheet  (subject × sequence/term matrix, "-" where no score)
"""

from typing import Any, Dict, List, Optional

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils.dataframe import dataframe_to_rows

from core.breakdown import PLACEHOLDER, breakdown_frame
from core.charts import coerce_number
from core.periods import normalize_period_payload, period_label

SUBJECT_COLUMNS = [
    ("subject_name", "Subject"),
    ("coefficient", "Coefficient"),
    ("average_score", "Average Score"),
    ("pass_rate", "Pass Rate (%)"),
    ("total_students", "Students"),
    ("excellent", "Excellent"),
    ("good", "Good"),
    ("average", "Average"),
    ("below_average", "Below Average"),
]

GOOD_PASS_RATE = 70
PASS_RATE_THRESHOLD = 50

HEADER_FONT = Font(bold=True, color="FFFFFF", size=11)
HEADER_FILL = PatternFill(start_color="1a1a2e", end_color="1a1a2e", fill_type="solid")
RED_FILL = PatternFill(start_color="fadbd8", end_color="fadbd8", fill_type="solid")
GREEN_FILL = PatternFill(start_color="d5f5e3", end_color="d5f5e3", fill_type="solid")
YELLOW_FILL = PatternFill(start_color="fef9e7", end_color="fef9e7", fill_type="solid")
THIN_BORDER = Border(
    left=Side(style="thin"), right=Side(style="thin"),
    top=Side(style="thin"), bottom=Side(style="thin"),
)


def subjects_frame(subjects: List[Dict[str, Any]]) -> pd.DataFrame:
    """Flatten subject records (grade distribution included) into a table."""
    rows = []
    for s in subjects or []:
        if not isinstance(s, dict):
            continue
        dist = s.get("grade_distribution") if isinstance(s.get("grade_distribution"), dict) else {}
        rows.append({
            "subject_name": s.get("subject_name"),
            "coefficient": coerce_number(s.get("coefficient")),
            "average_score": round(coerce_number(s.get("average_score")), 2),
            "pass_rate": round(coerce_number(s.get("pass_rate")), 1),
            "total_students": int(coerce_number(s.get("total_students"))),
            "excellent": int(coerce_number(dist.get("excellent"))),
            "good": int(coerce_number(dist.get("good"))),
            "average": int(coerce_number(dist.get("average"))),
            "below_average": int(coerce_number(dist.get("below_average"))),
        })
    df = pd.DataFrame(rows, columns=[key for key, _ in SUBJECT_COLUMNS])
    return df.rename(columns=dict(SUBJECT_COLUMNS))


def _style_sheet(ws, rate_col: Optional[int] = None):
    """Header styling, borders, pass-rate bands, frozen header, auto width."""
    for cell in ws[1]:
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center")
        cell.border = THIN_BORDER

    for row in ws.iter_rows(min_row=2, max_row=ws.max_row):
        for cell in row:
            cell.border = THIN_BORDER
            cell.alignment = Alignment(horizontal="center")

        if rate_col and row[rate_col - 1].value is not None:
            try:
                val = float(row[rate_col - 1].value)
            except (TypeError, ValueError):
                continue
            if val >= GOOD_PASS_RATE:
                fill = GREEN_FILL
            elif val >= PASS_RATE_THRESHOLD:
                fill = YELLOW_FILL
            else:
                fill = RED_FILL
            for cell in row:
                cell.fill = fill

    ws.freeze_panes = "A2"

    for col_cells in ws.columns:
        max_len = max(len(str(cell.value or "")) for cell in col_cells)
        ws.column_dimensions[col_cells[0].column_letter].width = min(max_len + 4, 30)


def generate_subjects_excel(
    output_path: str,
    data: Any,
    school_name: Optional[str] = None,
    column_order: str = "appearance",
) -> Dict[str, Any]:
    """Write the subject table and breakdown matrix of a subject analysis payload."""
    normalized = normalize_period_payload(data)
    if not isinstance(normalized, dict):
        normalized = {}

    subjects = normalized.get("subject_analysis") or []
    breakdown = normalized.get("breakdown") or []
    period_info = normalized.get("period_info") if isinstance(normalized.get("period_info"), dict) else {}

    wb = Workbook()

    ws_subjects = wb.active
    ws_subjects.title = "Subjects"
    ws_subjects.sheet_properties.tabColor = "1a1a2e"
    subject_df = subjects_frame(subjects)
    for r in dataframe_to_rows(subject_df, index=False, header=True):
        ws_subjects.append(r)
    _style_sheet(ws_subjects, rate_col=list(subject_df.columns).index("Pass Rate (%)") + 1)

    sheets = ["Subjects"]
    if breakdown:
        ws_breakdown = wb.create_sheet("Breakdown")
        matrix = breakdown_frame(breakdown, order=column_order).round(2)
        # 0 counts as no score, as in the JSON matrix
        matrix = matrix.where(matrix != 0)
        matrix = matrix.astype(object).where(matrix.notna(), PLACEHOLDER)
        matrix = matrix.reset_index().rename(columns={"subject": "Subject"})
        for r in dataframe_to_rows(matrix, index=False, header=True):
            ws_breakdown.append(r)
        _style_sheet(ws_breakdown)
        sheets.append("Breakdown")

    ws_info = wb.create_sheet("Info")
    school_info = normalized.get("school_info") if isinstance(normalized.get("school_info"), dict) else {}
    ws_info.append(["School", school_name or school_info.get("name") or ""])
    ws_info.append(["Period", period_label(period_info)])
    ws_info.append(["Subjects", len(subject_df)])
    for cell in ws_info["A"]:
        cell.font = Font(bold=True)
    ws_info.column_dimensions["A"].width = 14
    ws_info.column_dimensions["B"].width = 40
    sheets.append("Info")

    wb.save(output_path)
    return {"path": output_path, "sheets": sheets, "subjects": len(subject_df)}
