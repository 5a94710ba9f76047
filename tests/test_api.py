"""Tests for FastAPI endpoints."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from finmodel.database import Base, get_db
from finmodel.main import app


@pytest.fixture
def client(tmp_path):
    """Create a test client with a file-based temp database."""
    db_path = tmp_path / "test.db"
    engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    TestSession = sessionmaker(bind=engine)

    def override_get_db():
        db = TestSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def model_id(client):
    """Create a test model and return its ID."""
    resp = client.post("/api/models", json={
        "name": "Acme",
        "ticker": "ACME",
        "start_year": 2025,
        "end_year": 2027,
        "shares_outstanding": 1_000_000,
        "assumptions": {
            "revenue_growth_rate": 0.2,
            "churn_rate": 0.05,
            "avg_revenue_per_unit": 100,
            "initial_customers": 1000,
            "initial_cash": 500_000,
        },
    })
    assert resp.status_code == 201
    return resp.json()["id"]


class TestMeta:
    def test_root(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        assert resp.json()["name"] == "FinModel API"

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.json() == {"status": "healthy"}


class TestModels:
    def test_create_model(self, client, model_id):
        resp = client.get(f"/api/models/{model_id}")
        assert resp.status_code == 200
        data = resp.json()
        assert data["name"] == "Acme"
        assert data["granularity"] == "monthly"
        assert data["last_fingerprint"] is not None

    def test_create_inverted_years(self, client):
        resp = client.post("/api/models", json={"name": "X", "start_year": 2027, "end_year": 2025})
        assert resp.status_code == 422

    def test_create_bad_assumption(self, client):
        resp = client.post("/api/models", json={
            "name": "X", "start_year": 2025, "end_year": 2026,
            "assumptions": {"cogs_percent": -1},
        })
        assert resp.status_code == 422
        assert resp.json()["detail"]["error_code"] == "VALIDATION_ERROR"

    def test_list_models(self, client, model_id):
        resp = client.get("/api/models")
        assert len(resp.json()) == 1
        assert client.get("/api/models?name=zzz").json() == []

    def test_get_nonexistent_model(self, client):
        resp = client.get("/api/models/9999")
        assert resp.status_code == 404

    def test_update_model(self, client, model_id):
        resp = client.put(f"/api/models/{model_id}", json={"end_year": 2029})
        assert resp.status_code == 200
        assert len(resp.json()["balance_checks"]) == 5

    def test_update_model_inverted_years(self, client, model_id):
        resp = client.put(f"/api/models/{model_id}", json={"end_year": 2020})
        assert resp.status_code == 422
        assert resp.json()["detail"]["error_code"] == "VALIDATION_ERROR"

    def test_delete_model(self, client, model_id):
        resp = client.delete(f"/api/models/{model_id}")
        assert resp.status_code == 200
        assert client.get(f"/api/models/{model_id}").status_code == 404

    def test_recalculate(self, client, model_id):
        fingerprint = client.get(f"/api/models/{model_id}").json()["last_fingerprint"]
        resp = client.post(f"/api/models/{model_id}/recalculate")
        assert resp.status_code == 200
        data = resp.json()
        assert data["fingerprint"] == fingerprint
        assert data["is_balanced"] is True
        assert data["dcf_error"] is None
        assert data["rows_written"]["balance_sheet"] == 3

    def test_recalculate_nonexistent(self, client):
        assert client.post("/api/models/9999/recalculate").status_code == 404


class TestAssumptions:
    def test_get(self, client, model_id):
        resp = client.get(f"/api/models/{model_id}/assumptions")
        assert resp.status_code == 200
        assert resp.json()["revenue_growth_rate"] == 0.2

    def test_patch_cascades(self, client, model_id):
        before = client.get(f"/api/models/{model_id}/dcf").json()["target_price_per_share"]
        resp = client.patch(f"/api/models/{model_id}/assumptions", json={"revenue_growth_rate": 0.6})
        assert resp.status_code == 200
        assert resp.json()["target_price_per_share"] > before
        assert client.get(f"/api/models/{model_id}/assumptions").json()["revenue_growth_rate"] == 0.6

    def test_patch_rejected(self, client, model_id):
        fingerprint = client.get(f"/api/models/{model_id}").json()["last_fingerprint"]
        resp = client.patch(f"/api/models/{model_id}/assumptions", json={"cogs_percent": -0.1})
        assert resp.status_code == 422
        body = resp.json()["detail"]
        assert body["error_code"] == "VALIDATION_ERROR"
        assert "cogs_percent" in body["context"]["errors"]
        assert client.get(f"/api/models/{model_id}").json()["last_fingerprint"] == fingerprint

    def test_patch_target_net_margin(self, client, model_id):
        assert client.get(f"/api/models/{model_id}/assumptions").json()["target_net_margin"] is None
        resp = client.patch(f"/api/models/{model_id}/assumptions", json={"target_net_margin": 0.3})
        assert resp.status_code == 200
        rows = client.get(f"/api/models/{model_id}/statements/income_statement").json()["rows"]
        assert abs(rows[-1]["net_income"] / rows[-1]["revenue"] - 0.3) < 1e-3

    def test_patch_unknown_field(self, client, model_id):
        resp = client.patch(f"/api/models/{model_id}/assumptions", json={"growth": 0.1})
        assert resp.status_code == 422


class TestStatements:
    def test_get_balance_sheet(self, client, model_id):
        resp = client.get(f"/api/models/{model_id}/statements/balance_sheet")
        assert resp.status_code == 200
        data = resp.json()
        assert [r["year"] for r in data["rows"]] == [2025, 2026, 2027]
        assert all(c["status"] == "Balanced" for c in data["balance_checks"])

    def test_unknown_kind(self, client, model_id):
        resp = client.get(f"/api/models/{model_id}/statements/ledger")
        assert resp.status_code == 404

    def test_mark_and_clear_actual(self, client, model_id):
        url = f"/api/models/{model_id}/statements/income_statement/2025/actual"
        resp = client.put(url, json={"values": {"revenue": 1234.0}})
        assert resp.status_code == 200

        client.patch(f"/api/models/{model_id}/assumptions", json={"churn_rate": 0.2})
        rows = client.get(f"/api/models/{model_id}/statements/income_statement").json()["rows"]
        assert rows[0]["is_actual"] is True
        assert rows[0]["revenue"] == 1234.0

        resp = client.delete(url)
        assert resp.status_code == 200
        rows = client.get(f"/api/models/{model_id}/statements/income_statement").json()["rows"]
        assert rows[0]["is_actual"] is False
        assert rows[0]["revenue"] != 1234.0

    def test_imbalanced_actual_warns(self, client, model_id):
        rows = client.get(f"/api/models/{model_id}/statements/balance_sheet").json()["rows"]
        resp = client.put(
            f"/api/models/{model_id}/statements/balance_sheet/2026/actual",
            json={"values": {"total_assets": rows[1]["total_assets"] + 1000}},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["is_balanced"] is False
        assert data["warnings"][0]["year"] == 2026

    def test_mark_actual_unknown_field(self, client, model_id):
        resp = client.put(
            f"/api/models/{model_id}/statements/cash_flow/2025/actual",
            json={"values": {"widgets": 1.0}},
        )
        assert resp.status_code == 422
        assert resp.json()["detail"]["error_code"] == "VALIDATION_ERROR"

    def test_clear_without_actual(self, client, model_id):
        resp = client.delete(f"/api/models/{model_id}/statements/cash_flow/2025/actual")
        assert resp.status_code == 404


class TestValuation:
    def test_get_dcf(self, client, model_id):
        data = client.get(f"/api/models/{model_id}/dcf").json()
        assert abs(data["cost_of_equity"] - 0.11425) < 1e-9
        assert abs(data["wacc"] - 0.09235) < 1e-9
        assert data["sensitivity"]["values"][2][2] == data["target_price_per_share"]

    def test_sensitivity(self, client, model_id):
        resp = client.get(f"/api/models/{model_id}/dcf/sensitivity")
        assert resp.status_code == 200
        assert len(resp.json()["values"]) == 5

    def test_patch_dcf_domain_error(self, client, model_id):
        before = client.get(f"/api/models/{model_id}/dcf").json()
        resp = client.patch(f"/api/models/{model_id}/dcf", json={"long_term_growth": 0.15})
        assert resp.status_code == 422
        assert resp.json()["detail"]["error_code"] == "DOMAIN_ERROR"
        after = client.get(f"/api/models/{model_id}/dcf").json()
        assert after["long_term_growth"] == before["long_term_growth"]
        assert after["target_price_per_share"] == before["target_price_per_share"]

    def test_patch_dcf(self, client, model_id):
        resp = client.patch(f"/api/models/{model_id}/dcf", json={"current_share_price": 12.5})
        assert resp.status_code == 200
        comparison = client.get(f"/api/models/{model_id}/valuation-comparison").json()
        assert comparison["current_share_price"] == 12.5
        assert comparison["percent_to_target"] is not None

    def test_valuation_comparison(self, client, model_id):
        resp = client.patch(
            f"/api/models/{model_id}/valuation-comparison", json={"pr_bull_multiple": 12}
        )
        assert resp.status_code == 200
        data = client.get(f"/api/models/{model_id}/valuation-comparison").json()
        assert data["pr_bull_multiple"] == 12
        assert data["pr_bull_target"] > data["pr_base_target"]
        assert data["dcf_base_target"] is not None


class TestScenariosAndForecast:
    def test_create_and_compare(self, client, model_id):
        resp = client.post(f"/api/models/{model_id}/scenarios", json={
            "name": "Bull", "scenario_type": "optimistic",
        })
        assert resp.status_code == 201
        assert abs(resp.json()["assumption"]["revenue_growth_rate"] - 0.26) < 1e-9

        data = client.get(f"/api/models/{model_id}/scenarios/compare").json()
        assert [s["name"] for s in data["scenarios"]] == ["Base", "Bull"]

    def test_invalid_scenario_type(self, client, model_id):
        resp = client.post(f"/api/models/{model_id}/scenarios", json={
            "name": "Odd", "scenario_type": "sideways",
        })
        assert resp.status_code == 422

    def test_delete_scenario(self, client, model_id):
        sid = client.post(f"/api/models/{model_id}/scenarios", json={"name": "B"}).json()["id"]
        assert client.delete(f"/api/scenarios/{sid}").status_code == 200
        assert client.get(f"/api/models/{model_id}/scenarios").json() == []

    def test_forecast(self, client, model_id):
        data = client.get(f"/api/models/{model_id}/forecast").json()
        assert len(data["periods"]) == 36
        assert len(data["quarterly"]) == 12
        assert len(data["annual"]) == 3

    def test_forecast_annual_only(self, client, model_id):
        data = client.get(f"/api/models/{model_id}/forecast?annual=true").json()
        assert "periods" not in data
        assert len(data["annual"]) == 3

    def test_forecast_unknown_scenario(self, client, model_id):
        resp = client.get(f"/api/models/{model_id}/forecast?scenario_id=999")
        assert resp.status_code == 404


class TestActualsAndVariance:
    def test_actual_and_variance(self, client, model_id):
        resp = client.post(f"/api/models/{model_id}/actuals", json={
            "period": "2025-01", "revenue": 105_000,
        })
        assert resp.status_code == 201

        data = client.get(
            f"/api/models/{model_id}/variance?only_with_actuals=true"
        ).json()
        assert len(data["rows"]) == 1
        line = data["rows"][0]["revenue"]
        assert abs(line["variance"] - 5_000) < 1e-6
        assert abs(line["variance_percent"] - 0.05) < 1e-9

    def test_bad_period(self, client, model_id):
        resp = client.post(f"/api/models/{model_id}/actuals", json={"period": "2025-13"})
        assert resp.status_code == 422

    def test_delete_actual(self, client, model_id):
        aid = client.post(f"/api/models/{model_id}/actuals", json={"period": "2025"}).json()["id"]
        assert client.delete(f"/api/actuals/{aid}").status_code == 200
        assert client.get(f"/api/models/{model_id}/actuals").json() == []
