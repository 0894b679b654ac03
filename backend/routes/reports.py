"""
Report routes — Excel export endpoints.
"""

import os
import re
import uuid
from pathlib import Path

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask

from core.breakdown import COLUMN_ORDERS
from core.log import setup_logger
from core.report_builder import generate_subjects_excel

router = APIRouter()

logger = setup_logger("schoolboard.routes.reports")

SCHOOL_NAME = os.getenv("SCHOOL_NAME", "My School")
REPORTS_DIR = Path(__file__).resolve().parent.parent / "data" / "reports"
REPORTS_DIR.mkdir(parents=True, exist_ok=True)


def _safe_token(value: str, fallback: str = "item") -> str:
    """Create filesystem-safe token for filenames."""
    token = re.sub(r"[^A-Za-z0-9._-]+", "_", str(value)).strip("._-")
    return token or fallback


def _safe_unlink(path: str):
    """Delete a generated file once the response has been sent."""
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Could not remove %s: %s", path, exc)


@router.post("/subjects-excel")
async def subjects_excel(payload: dict):
    """Export the subject table and breakdown matrix as an Excel workbook."""
    data = payload.get("data")
    if not data:
        raise HTTPException(400, "No data provided.")
    column_order = payload.get("column_order") or "appearance"
    if column_order not in COLUMN_ORDERS:
        raise HTTPException(400, f"Unknown column order: {column_order}")

    school_info = data.get("school_info") if isinstance(data, dict) else None
    school_name = (school_info or {}).get("name") or SCHOOL_NAME
    report_id = str(uuid.uuid4())[:8]
    output_path = REPORTS_DIR / f"subjects_{report_id}.xlsx"

    generate_subjects_excel(
        output_path=str(output_path),
        data=data,
        school_name=school_name,
        column_order=column_order,
    )

    return FileResponse(
        str(output_path),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        filename=f"Subject_Analysis_{_safe_token(school_name, fallback='school')}_{report_id}.xlsx",
        background=BackgroundTask(_safe_unlink, str(output_path)),
    )
