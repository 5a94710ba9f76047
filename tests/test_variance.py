"""Tests for the forecast-vs-actual variance engine."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from types import SimpleNamespace

from finmodel.engines.aggregation import aggregate_annual
from finmodel.engines.forecast import generate_forecast
from finmodel.engines.variance import calculate_variance, variance_line


class TestVarianceLine:
    def test_over_forecast(self):
        line = variance_line(2500.0, 2650.0)
        assert abs(line.variance - 150.0) < 1e-9
        assert abs(line.variance_percent - 0.06) < 1e-9

    def test_under_forecast(self):
        line = variance_line(2000.0, 1500.0)
        assert line.variance == -500.0
        assert line.variance_percent == -0.25

    def test_negative_forecast_uses_magnitude(self):
        line = variance_line(-1000.0, -500.0)
        assert line.variance == 500.0
        assert line.variance_percent == 0.5

    def test_zero_forecast(self):
        line = variance_line(0.0, 100.0)
        assert line.variance == 100.0
        assert line.variance_percent is None

    def test_missing_actual(self):
        line = variance_line(100.0, None)
        assert line.forecast == 100.0
        assert line.actual is None
        assert line.variance is None
        assert line.variance_percent is None

    def test_zero_actual_is_a_value(self):
        line = variance_line(100.0, 0.0)
        assert line.actual == 0.0
        assert line.variance == -100.0
        assert line.variance_percent == -1.0


class TestCalculateVariance:
    def test_rows_kept_without_actuals(self, assumptions):
        rows = generate_forecast(assumptions, 2025, 2025)
        result = calculate_variance(rows, [{"period": "2025-02", "revenue": 120_000.0}])
        assert len(result) == 12
        assert [r.period for r in result] == [r.period for r in rows]
        assert sum(1 for r in result if r.has_actual) == 1
        assert result[0].revenue.actual is None

    def test_matches_on_period(self, assumptions):
        rows = generate_forecast(assumptions, 2025, 2025)
        result = calculate_variance(rows, [{"period": "2025-02", "revenue": 120_000.0}])
        feb = result[1]
        assert feb.period == "2025-02"
        assert feb.revenue.actual == 120_000.0
        assert abs(feb.revenue.variance - (120_000.0 - rows[1].revenue)) < 1e-6
        assert feb.net_income.actual is None

    def test_operating_expenses_compare_to_total_opex(self, assumptions):
        rows = generate_forecast(assumptions, 2025, 2025)
        result = calculate_variance(rows, [{"period": "2025-01", "operating_expenses": 1.0}])
        assert result[0].operating_expenses.forecast == rows[0].total_opex

    def test_orm_style_actuals(self, assumptions):
        rows = generate_forecast(assumptions, 2025, 2025, "quarterly")
        actual = SimpleNamespace(
            period="2025-Q3", revenue=None, cogs=None, operating_expenses=None,
            net_income=5_000.0, cash_balance=None, customers=1_100,
        )
        result = calculate_variance(rows, [actual])
        assert result[2].net_income.actual == 5_000.0
        assert result[2].customers.actual == 1_100.0
        assert result[2].revenue.actual is None

    def test_annual_rows(self, assumptions):
        annual = aggregate_annual(generate_forecast(assumptions, 2025, 2026))
        result = calculate_variance(annual, [{"period": "2026", "revenue": 1.0}])
        assert [r.period for r in result] == ["2025", "2026"]
        assert not result[0].has_actual
        assert result[1].revenue.forecast == annual[1].revenue

    def test_unmatched_actuals_ignored(self, assumptions):
        rows = generate_forecast(assumptions, 2025, 2025)
        result = calculate_variance(rows, [{"period": "2031-01", "revenue": 1.0}])
        assert not any(r.has_actual for r in result)

    def test_to_dict(self, assumptions):
        rows = generate_forecast(assumptions, 2025, 2025)
        payload = calculate_variance(rows, [])[0].to_dict()
        assert payload["period"] == "2025-01"
        assert set(payload["revenue"]) == {"forecast", "actual", "variance", "variance_percent"}
