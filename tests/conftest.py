"""Shared test fixtures for FinModel."""

import sys
import os

# Keep the app's default engine off the package directory during tests
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from finmodel.database import Base
from finmodel import models, recalculate, schemas
from finmodel.engines.assumptions import AssumptionSet


@pytest.fixture
def db_session():
    """Create an in-memory SQLite database session for testing."""
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(bind=engine)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def assumptions():
    """Simple assumption set: no churn, no decay, round numbers."""
    return AssumptionSet(
        revenue_growth_rate=0.20,
        churn_rate=0.0,
        avg_revenue_per_unit=100.0,
        initial_customers=1000.0,
        initial_cash=500_000.0,
    )


@pytest.fixture
def sample_model(db_session):
    """A three-year monthly model, created and recalculated."""
    data = schemas.FinancialModelCreate(
        name="Test SaaS",
        ticker="TST",
        start_year=2025,
        end_year=2027,
        shares_outstanding=1_000_000,
        assumptions=schemas.AssumptionPatch(
            revenue_growth_rate=0.20,
            churn_rate=0.05,
            avg_revenue_per_unit=100.0,
            initial_customers=1000.0,
            initial_cash=500_000.0,
        ),
    )
    return recalculate.create_model(db_session, data)


@pytest.fixture
def sample_actual(db_session, sample_model):
    actual = models.Actual(
        model_id=sample_model.id,
        period="2025-01",
        revenue=105_000.0,
        net_income=15_000.0,
    )
    db_session.add(actual)
    db_session.commit()
    db_session.refresh(actual)
    return actual
