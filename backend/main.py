"""
Schoolboard — School performance analytics dashboards.
FastAPI backend entry point.
"""

import os

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.client import AnalyticsFetchError, UPSTREAM_API_URL
from core.log import setup_logger
from routes.analytics import router as analytics_router
from routes.reports import router as reports_router
from routes.selections import router as selections_router

# Load environment
load_dotenv()

logger = setup_logger()

SCHOOL_NAME = os.getenv("SCHOOL_NAME", "My School")
# Comma-separated allowed origins, e.g. http://localhost:5173,https://app.example.com
raw_origins = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000")
ALLOWED_ORIGINS = [o.strip() for o in raw_origins.split(",") if o.strip()]

app = FastAPI(
    title="Schoolboard API",
    description=(
        "School performance dashboards — school overview, subject analysis, "
        "class comparison and student analytics built from the records API."
    ),
    version="1.0.0",
)

# CORS — allow the React dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register route modules
app.include_router(analytics_router, prefix="/api/analytics", tags=["Analytics"])
app.include_router(selections_router, prefix="/api/selections", tags=["Selections"])
app.include_router(reports_router, prefix="/api/reports", tags=["Reports"])


@app.exception_handler(AnalyticsFetchError)
async def analytics_fetch_error_handler(request: Request, exc: AnalyticsFetchError):
    """Error panel: upstream message plus the query to retry."""
    status_code = exc.status_code if exc.status_code and 400 <= exc.status_code < 500 else 502
    logger.error("Analytics fetch failed (%s): %s", status_code, exc.message)
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "message": exc.message,
                "status_code": exc.status_code,
                "retry": exc.query or {},
            }
        },
    )


@app.get("/api/health")
async def health_check():
    return {
        "status": "ok",
        "school_name": SCHOOL_NAME,
    }


@app.get("/api/config")
async def get_config():
    """Return server configuration to the frontend."""
    return {
        "school_name": SCHOOL_NAME,
        "upstream_api_url": UPSTREAM_API_URL,
    }
