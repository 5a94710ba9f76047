"""
Seed the database with two sample SaaS models, scenarios and a few actuals.

Usage:
    python -m finmodel.seed_data
"""

import logging

from . import crud, recalculate, schemas
from .database import init_db, SessionLocal
from .logging_config import configure_logging

logger = logging.getLogger("finmodel.seed_data")

MODELS = [
    {
        "name": "Acme Analytics",
        "ticker": "ACME",
        "description": "Mid-market analytics SaaS, monthly plan",
        "start_year": 2025,
        "end_year": 2029,
        "shares_outstanding": 5_000_000,
        "granularity": "monthly",
        "assumptions": {
            "revenue_growth_rate": 0.40,
            "churn_rate": 0.08,
            "avg_revenue_per_unit": 450,
            "initial_customers": 1200,
            "growth_decay_rate": 0.25,
            "terminal_growth_rate": 0.05,
            "initial_cash": 2_500_000,
        },
    },
    {
        "name": "Borealis Devices",
        "ticker": "BORL",
        "description": "Hardware + subscription, quarterly plan with opening debt",
        "start_year": 2025,
        "end_year": 2028,
        "shares_outstanding": 12_000_000,
        "granularity": "quarterly",
        "assumptions": {
            "revenue_growth_rate": 0.15,
            "churn_rate": 0.12,
            "avg_revenue_per_unit": 80,
            "initial_customers": 40_000,
            "cogs_percent": 0.45,
            "inventory_percent": 0.10,
            "initial_cash": 8_000_000,
            "opening_debt": 3_000_000,
            "annual_debt_repayment": 500_000,
        },
    },
]

SCENARIOS = [
    {"name": "Bull case", "scenario_type": "optimistic", "color": "#22c55e"},
    {"name": "Bear case", "scenario_type": "pessimistic", "color": "#ef4444"},
]

ACTUALS = {
    "Acme Analytics": [
        {"period": "2025-01", "revenue": 560_000, "net_income": 105_000, "customers": 1215},
        {"period": "2025-02", "revenue": 571_000, "net_income": 98_500, "customers": 1238},
        {"period": "2025-03", "revenue": 590_500, "net_income": 112_000, "customers": 1262},
    ],
    "Borealis Devices": [
        {"period": "2025-Q1", "revenue": 9_400_000, "cash_balance": 8_900_000},
    ],
}


def seed():
    """Create the sample models unless a model with the same name exists."""
    init_db()
    db = SessionLocal()
    try:
        for spec in MODELS:
            if crud.list_models(db, name=spec["name"]):
                logger.info(f"Skipping existing model '{spec['name']}'")
                continue

            model = recalculate.create_model(db, schemas.FinancialModelCreate(**spec))
            for scenario in SCENARIOS:
                recalculate.create_scenario(db, model.id, **scenario)
            for actual in ACTUALS.get(spec["name"], []):
                crud.create_actual(db, model.id, schemas.ActualCreate(**actual))

            summary = recalculate.recalculate_model(db, model.id)
            logger.info(
                f"Seeded '{model.name}' (id={model.id}): "
                f"target price {summary['target_price_per_share']}, "
                f"balanced={summary['is_balanced']}"
            )
    finally:
        db.close()


if __name__ == "__main__":
    configure_logging()
    seed()
