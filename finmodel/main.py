"""
FinModel — FastAPI Application Entry Point

This is the main entry point for the FinModel API server.
It configures the FastAPI application, includes all routers, sets up CORS,
and initializes logging and the database on startup.

Architecture:
    - FastAPI application with auto-generated OpenAPI docs at /docs
    - All routers mounted under the /api prefix
    - Database tables created on startup via lifespan event

Usage:
    python -m uvicorn finmodel.main:app --host 127.0.0.1 --port 8050
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import CORS_ORIGINS
from .database import init_db
from .logging_config import configure_logging
from .routers import (
    actuals, assumptions, financial_models, forecast, scenarios, statements, valuation,
)

API_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    - On startup: configure logging, create tables if they don't exist
    - On shutdown: nothing special needed
    """
    configure_logging()
    init_db()
    yield


app = FastAPI(
    title="FinModel Financial Statement Engine",
    description=(
        "REST API for three-statement financial models. Assumption or actual "
        "edits cascade through the forecast, income statement, balance sheet, "
        "cash flow, DCF and comparable valuation, and forecast-vs-actual variance."
    ),
    version=API_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount all routers
app.include_router(financial_models.router)  # /api/models
app.include_router(assumptions.router)       # /api/models/{id}/assumptions
app.include_router(scenarios.router)         # /api/models/{id}/scenarios, /api/scenarios
app.include_router(forecast.router)          # /api/models/{id}/forecast
app.include_router(actuals.router)           # /api/models/{id}/actuals, /variance
app.include_router(statements.router)        # /api/models/{id}/statements
app.include_router(valuation.router)         # /api/models/{id}/dcf, /valuation-comparison


@app.get("/")
def root():
    """API information endpoint."""
    return {
        "name": "FinModel API",
        "version": API_VERSION,
        "status": "running",
        "docs": "/docs",
        "endpoints": {
            "models": "/api/models",
            "assumptions": "/api/models/{model_id}/assumptions",
            "scenarios": "/api/models/{model_id}/scenarios",
            "forecast": "/api/models/{model_id}/forecast",
            "actuals": "/api/models/{model_id}/actuals",
            "variance": "/api/models/{model_id}/variance",
            "statements": "/api/models/{model_id}/statements/{kind}",
            "dcf": "/api/models/{model_id}/dcf",
            "valuation_comparison": "/api/models/{model_id}/valuation-comparison",
        },
    }


@app.get("/health")
def health_check():
    """Simple health check for monitoring."""
    return {"status": "healthy"}
