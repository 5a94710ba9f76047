"""Tests for the DCF, sensitivity and comparable valuation engine."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest

from finmodel.errors import DomainError, ValidationError
from finmodel.engines.types import IncomeStatementRow
from finmodel.engines.valuation import (
    ComparableParameters, DCFParameters, DEFAULT_EARNINGS_GROWTH,
    build_parameters, comparable_valuation, cost_of_equity, discounted_cash_flow,
    earnings_growth, sensitivity_table, value_dcf, weighted_average_cost_of_capital,
)

FCF = [1_000_000.0, 1_200_000.0, 1_450_000.0]


class TestCostOfCapital:
    def test_capm(self):
        assert abs(cost_of_equity(0.043, 1.25, 0.10) - 0.11425) < 1e-12

    def test_wacc(self):
        wacc = weighted_average_cost_of_capital(0.11425, 0.70, 0.055, 0.25, 0.30)
        assert abs(wacc - 0.09235) < 1e-12

    def test_default_parameters_give_reference_wacc(self):
        result = value_dcf(DCFParameters(), FCF, 1_000_000)
        assert abs(result.cost_of_equity - 0.11425) < 1e-12
        assert abs(result.dcf.wacc - 0.09235) < 1e-12


class TestDiscountedCashFlow:
    def test_level_perpetuity(self):
        # 100 a year forever at 10% is worth 1000
        result = discounted_cash_flow([100.0, 100.0], 0.10, 0.0, 0.0, 1)
        assert abs(result.npv - (100 / 1.1 + 100 / 1.21)) < 1e-9
        assert abs(result.terminal_value - 1000.0) < 1e-9
        assert abs(result.terminal_value_discounted - 1000.0 / 1.21) < 1e-9
        assert abs(result.target_value - 1000.0) < 1e-9

    def test_debt_and_shares(self):
        result = discounted_cash_flow([100.0, 100.0], 0.10, 0.0, 200.0, 4)
        assert abs(result.target_equity_value - 800.0) < 1e-9
        assert abs(result.target_price_per_share - 200.0) < 1e-9

    def test_growth_terminal_value(self):
        result = discounted_cash_flow([100.0], 0.10, 0.02, 0.0, 1)
        assert abs(result.terminal_value - 100 * 1.02 / 0.08) < 1e-9

    def test_wacc_equal_to_growth(self):
        with pytest.raises(DomainError):
            discounted_cash_flow(FCF, 0.03, 0.03, 0.0, 1)

    def test_wacc_below_growth(self):
        with pytest.raises(DomainError):
            discounted_cash_flow(FCF, 0.02, 0.03, 0.0, 1)

    def test_no_cash_flows(self):
        with pytest.raises(DomainError):
            discounted_cash_flow([], 0.10, 0.02, 0.0, 1)

    def test_zero_shares(self):
        with pytest.raises(ValidationError):
            discounted_cash_flow(FCF, 0.10, 0.02, 0.0, 0)

    def test_reproducible(self):
        a = discounted_cash_flow(FCF, 0.09235, 0.025, 500_000, 1_000_000)
        b = discounted_cash_flow(FCF, 0.09235, 0.025, 500_000, 1_000_000)
        assert a == b


class TestSensitivityTable:
    def test_shape_and_axes(self):
        grid = sensitivity_table(FCF, 0.09, 0.025, 0.0, 1_000_000)
        assert len(grid.values) == 5
        assert all(len(row) == 5 for row in grid.values)
        assert abs(grid.wacc_range[0] - 0.07) < 1e-12
        assert abs(grid.wacc_range[4] - 0.11) < 1e-12
        assert abs(grid.ltg_range[0] - 0.005) < 1e-12
        assert abs(grid.ltg_range[4] - 0.045) < 1e-12

    def test_center_equals_base_case(self):
        result = value_dcf(DCFParameters(), FCF, 1_000_000)
        assert result.sensitivity.values[2][2] == result.dcf.target_price_per_share
        assert result.sensitivity.wacc_range[2] == result.dcf.wacc

    def test_price_falls_as_wacc_rises(self):
        grid = sensitivity_table(FCF, 0.09235, 0.025, 0.0, 1_000_000)
        column = [row[2] for row in grid.values]
        assert all(a > b for a, b in zip(column, column[1:]))

    def test_price_rises_with_growth(self):
        grid = sensitivity_table(FCF, 0.09235, 0.025, 0.0, 1_000_000)
        row = grid.values[2]
        assert all(a < b for a, b in zip(row, row[1:]))

    def test_undefined_cells_are_none(self):
        grid = sensitivity_table(FCF, 0.05, 0.04, 0.0, 1_000_000)
        # wacc 3% vs growth 6%
        assert grid.values[0][4] is None
        # wacc 7% vs growth 2%
        assert grid.values[4][0] is not None

    def test_base_case_failure_propagates(self):
        with pytest.raises(DomainError):
            value_dcf(DCFParameters(long_term_growth=0.2), FCF, 1_000_000)


class TestParameters:
    def test_defaults(self):
        params = build_parameters(DCFParameters, {})
        assert params == DCFParameters()

    def test_nulls_fall_back_to_defaults(self):
        params = build_parameters(DCFParameters, {"beta": None, "total_debt": 10.0})
        assert params.beta == 1.25
        assert params.total_debt == 10.0

    def test_unknown_keys_rejected(self):
        with pytest.raises(ValidationError) as exc:
            build_parameters(DCFParameters, {"betta": 1.1, "total_debt": 10.0})
        assert exc.value.errors == {"betta": "unknown field"}

    def test_unknown_comparable_key_rejected(self):
        with pytest.raises(ValidationError):
            build_parameters(ComparableParameters, {"pr_mid_multiple": 6.0})

    def test_out_of_range(self):
        with pytest.raises(ValidationError) as exc:
            build_parameters(DCFParameters, {"tax_rate": 2.0})
        assert "tax_rate" in exc.value.errors

    def test_negative_multiple(self):
        with pytest.raises(ValidationError):
            build_parameters(ComparableParameters, {"pr_base_multiple": -1})


def _income(eps_prev, eps_last, revenue=10_000_000.0):
    return [
        IncomeStatementRow(year=2026, revenue=8_000_000.0, eps=eps_prev),
        IncomeStatementRow(year=2027, revenue=revenue, eps=eps_last),
    ]


class TestComparables:
    def test_earnings_growth(self):
        assert abs(earnings_growth(_income(1.0, 1.5)) - 0.5) < 1e-12

    def test_earnings_growth_from_negative_base(self):
        assert abs(earnings_growth(_income(-1.0, 0.5)) - 1.5) < 1e-12

    def test_earnings_growth_defaults(self):
        assert earnings_growth([IncomeStatementRow(year=2027, eps=1.0)]) == DEFAULT_EARNINGS_GROWTH
        assert earnings_growth(_income(0.0, 1.0)) == DEFAULT_EARNINGS_GROWTH

    def test_earnings_growth_ignores_quarters(self):
        rows = _income(1.0, 1.5) + [IncomeStatementRow(year=2027, quarter=4, eps=9.0)]
        assert abs(earnings_growth(rows) - 0.5) < 1e-12

    def test_targets_with_dcf(self):
        result = comparable_valuation(
            ComparableParameters(), _income(1.0, 1.5), 1_000_000,
            current_share_price=50.0, dcf_price=40.0,
        )
        assert result.pr_bull_target == 100.0
        assert result.pr_base_target == 75.0
        assert result.pr_bear_target == 50.0
        assert result.pe_bull_target == 150.0
        assert result.pe_base_target == 112.5
        assert result.pe_bear_target == 75.0
        assert result.dcf_bull_target == 48.0
        assert result.dcf_base_target == 40.0
        assert result.dcf_bear_target == 32.0
        assert result.average_target == 75.83
        assert abs(result.percent_to_target - 0.5166) < 1e-6

    def test_targets_without_dcf(self):
        result = comparable_valuation(ComparableParameters(), _income(1.0, 1.5), 1_000_000)
        assert result.dcf_bull_target is None
        assert result.dcf_base_target is None
        assert result.dcf_bear_target is None
        assert result.average_target == 93.75

    def test_no_share_price(self):
        result = comparable_valuation(ComparableParameters(), _income(1.0, 1.5), 1_000_000)
        assert result.current_share_price == 0.0
        assert result.percent_to_target is None

    def test_custom_multipliers(self):
        params = ComparableParameters(dcf_bull_multiplier=1.5, dcf_bear_multiplier=0.5)
        result = comparable_valuation(params, _income(1.0, 1.5), 1_000_000, dcf_price=10.0)
        assert result.dcf_bull_target == 15.0
        assert result.dcf_bear_target == 5.0

    def test_no_income_rows(self):
        result = comparable_valuation(ComparableParameters(), [], 1_000_000)
        assert result.pr_base_target == 0.0
        assert result.average_target == 0.0
