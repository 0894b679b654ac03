"""
Analytics routes — view-models for the dashboard tabs.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from core.client import AnalyticsClient, AnalyticsFetchError, QueryCache, query_key
from core.log import setup_logger
from core.sorting import DEFAULT_SORT, subject_query_params
from core.view_models import VIEW_BUILDERS

router = APIRouter()

logger = setup_logger("schoolboard.routes.analytics")

QUERY_CACHE = QueryCache()


def get_client() -> AnalyticsClient:
    return AnalyticsClient()


def _check_tab(tab: str):
    if tab not in VIEW_BUILDERS:
        raise HTTPException(404, f"Unknown analytics tab '{tab}'.")


def _sort_state(sort_by: Optional[str], sort_direction: Optional[str], default=None):
    if not sort_by:
        return default
    return {"field": sort_by, "direction": sort_direction or "desc"}


def _build_view(tab: str, data, options: dict) -> dict:
    """Call the tab's builder with the options it understands."""
    builder = VIEW_BUILDERS[tab]
    if options.get("sort") is not None and not isinstance(options["sort"], dict):
        raise HTTPException(400, "sort must be an object with 'field' and 'direction'.")
    if tab == "school":
        kwargs = {"time_scope": options.get("time_scope"), "reveals": options.get("reveals")}
    elif tab == "subjects":
        kwargs = {
            "sort": options.get("sort") or DEFAULT_SORT,
            "subject_query": options.get("subject_query") or "",
            "column_order": options.get("column_order") or "appearance",
        }
    elif tab == "classes":
        kwargs = {"column_order": options.get("column_order") or "appearance"}
    elif tab == "class":
        kwargs = {"time_scope": options.get("time_scope")}
    else:
        kwargs = {"sort": options.get("sort")}

    try:
        return builder(data, **kwargs)
    except ValueError as exc:
        raise HTTPException(400, str(exc))


@router.post("/{tab}/view")
async def build_view(tab: str, payload: dict):
    """View-model for a raw analytics payload posted by the caller."""
    _check_tab(tab)
    data = payload.get("data")
    if not data:
        raise HTTPException(400, "No data provided.")
    return _build_view(tab, data, payload)


@router.get("/{tab}")
def fetch_view(
    tab: str,
    time_scope: Optional[str] = None,
    period_id: Optional[str] = None,
    academic_year_id: Optional[str] = None,
    class_id: Optional[str] = None,
    student_id: Optional[str] = None,
    term_id: Optional[str] = None,
    sequence_id: Optional[str] = None,
    subject_query: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_direction: Optional[str] = None,
    column_order: Optional[str] = None,
    refresh: bool = False,
    client: AnalyticsClient = Depends(get_client),
):
    """Fetch a tab's payload from the records API and build its view-model."""
    _check_tab(tab)

    options = {"time_scope": time_scope, "column_order": column_order}
    if tab == "subjects":
        sort = _sort_state(sort_by, sort_direction, default=DEFAULT_SORT)
        fetch_options = {
            "time_scope": time_scope,
            "period_id": period_id,
            "academic_year_id": academic_year_id,
            **subject_query_params({"subject_query": subject_query}, sort),
        }
        options.update({"sort": sort, "subject_query": subject_query})
    elif tab == "class":
        fetch_options = {
            "class_id": class_id,
            "time_scope": time_scope,
            "period_id": period_id,
            "academic_year_id": academic_year_id,
        }
    elif tab == "student":
        fetch_options = {
            "student_id": student_id,
            "time_scope": time_scope or "latest",
            "academic_year_id": academic_year_id,
            "term_id": term_id,
            "sequence_id": sequence_id,
        }
        # Student subject rows are sorted here, not upstream.
        options["sort"] = _sort_state(sort_by, sort_direction)
    else:
        fetch_options = {
            "time_scope": time_scope,
            "period_id": period_id,
            "academic_year_id": academic_year_id,
        }

    filters = {k: v for k, v in fetch_options.items() if k not in ("time_scope", "period_id")}
    key = query_key(tab, time_scope, period_id, filters)

    def _fetch():
        return client.fetch(tab, **fetch_options)

    try:
        if refresh:
            data = QUERY_CACHE.refetch(key, _fetch)
        else:
            data = QUERY_CACHE.get_or_fetch(key, _fetch)
    except AnalyticsFetchError as exc:
        exc.query = {"tab": tab, **{k: v for k, v in fetch_options.items() if v is not None}}
        raise
    except ValueError as exc:
        logger.warning("Rejected %s request: %s", tab, exc)
        raise HTTPException(400, str(exc))

    view = _build_view(tab, data, options) if data is not None else {"empty": True}
    view["is_refetching"] = QUERY_CACHE.is_fetching(key)
    return view
