"""Tests for the end-to-end recalculation pipeline."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dataclasses import replace

import pytest

from finmodel.errors import ValidationError
from finmodel.engines.types import IncomeStatementRow
from finmodel.engines.pipeline import (
    PipelineInputs, free_cash_flows, input_fingerprint, run_pipeline,
)


def _inputs(**overrides):
    values = dict(
        start_year=2025,
        end_year=2027,
        granularity="monthly",
        shares_outstanding=1_000_000,
        base_assumptions={
            "revenue_growth_rate": 0.25,
            "churn_rate": 0.05,
            "avg_revenue_per_unit": 100.0,
            "initial_customers": 1000.0,
            "initial_cash": 500_000.0,
        },
    )
    values.update(overrides)
    return PipelineInputs(**values)


class TestRunPipeline:
    def test_full_chain(self):
        result = run_pipeline(_inputs())
        assert len(result.forecast) == 36
        assert [a.year for a in result.annual] == [2025, 2026, 2027]
        assert len(result.statements.balance_sheet) == 3
        assert result.statements.is_balanced
        assert result.dcf is not None
        assert result.dcf_error is None
        assert result.comparison.dcf_base_target == round(result.dcf.dcf.target_price_per_share, 2)
        assert len(result.variance) == 36
        assert result.warnings == []

    def test_idempotent(self):
        first = run_pipeline(_inputs())
        second = run_pipeline(_inputs())
        assert first.fingerprint == second.fingerprint
        assert first.statements.income_statement == second.statements.income_statement
        assert first.dcf == second.dcf
        assert first.comparison == second.comparison

    def test_free_cash_flows_in_year_order(self):
        result = run_pipeline(_inputs())
        fcf = free_cash_flows(result.statements)
        assert fcf == [r.free_cash_flow for r in result.statements.cash_flow]

    def test_patch_changes_fingerprint_and_output(self):
        base = run_pipeline(_inputs())
        patched = run_pipeline(_inputs(assumption_patch={"revenue_growth_rate": 0.5}))
        assert patched.fingerprint != base.fingerprint
        assert patched.assumptions.revenue_growth_rate == 0.5
        assert patched.annual[-1].revenue > base.annual[-1].revenue

    def test_invalid_patch_raises_before_computing(self):
        with pytest.raises(ValidationError):
            run_pipeline(_inputs(assumption_patch={"cogs_percent": -0.2}))

    def test_invalid_dcf_parameters(self):
        with pytest.raises(ValidationError):
            run_pipeline(_inputs(dcf_parameters={"equity_weight": 3.0}))

    def test_dcf_domain_error_is_captured(self):
        result = run_pipeline(_inputs(dcf_parameters={"long_term_growth": 0.5}))
        assert result.dcf is None
        assert "WACC" in result.dcf_error
        assert result.comparison.dcf_base_target is None
        assert result.comparison.pr_base_target > 0
        assert result.statements.is_balanced

    def test_actual_rows_pass_through(self):
        fresh = run_pipeline(_inputs())
        actual = replace(fresh.statements.income_statement[0], is_actual=True, revenue=99.0)
        result = run_pipeline(_inputs(stored_statements={"income_statement": [actual]}))
        assert result.statements.income_statement[0] == actual
        assert result.fingerprint != fresh.fingerprint

    def test_variance_uses_actuals(self):
        result = run_pipeline(_inputs(actuals=[{"period": "2025-03", "revenue": 1.0}]))
        assert [v.period for v in result.variance if v.has_actual] == ["2025-03"]

    def test_share_price_flows_into_comparison(self):
        result = run_pipeline(_inputs(dcf_parameters={"current_share_price": 20.0}))
        assert result.comparison.current_share_price == 20.0
        assert result.comparison.percent_to_target is not None


class TestFingerprint:
    def test_stable_hex_digest(self):
        fp = input_fingerprint(_inputs())
        assert len(fp) == 64
        assert fp == input_fingerprint(_inputs())

    def test_resolved_assumptions_compare_equal(self):
        # Explicit defaults hash the same as omitted ones
        explicit = _inputs(assumption_patch={"cogs_percent": 0.30})
        assert input_fingerprint(explicit) == input_fingerprint(_inputs())

    def test_tolerance_is_an_input(self):
        assert input_fingerprint(_inputs(tolerance=1.0)) != input_fingerprint(_inputs())

    def test_actuals_are_inputs(self):
        with_actual = _inputs(actuals=[{"period": "2025-01", "revenue": 5.0}])
        assert input_fingerprint(with_actual) != input_fingerprint(_inputs())

    def test_derived_rows_are_not_inputs(self):
        fresh = run_pipeline(_inputs())
        stale = [replace(r, revenue=r.revenue + 1) for r in fresh.statements.income_statement]
        assert input_fingerprint(_inputs(stored_statements={"income_statement": stale})) == fresh.fingerprint

    def test_actuals_outside_years_are_not_inputs(self):
        fresh = run_pipeline(_inputs())
        stranded = replace(fresh.statements.cash_flow[0], year=2031, is_actual=True)
        with_stranded = _inputs(stored_statements={"cash_flow": [stranded]})
        assert input_fingerprint(with_stranded) == fresh.fingerprint
        assert run_pipeline(with_stranded).dcf == fresh.dcf


class TestQuarterlyRollup:
    def test_quarterly_actual_changes_annual_revenue(self):
        fresh = run_pipeline(_inputs())
        q1 = IncomeStatementRow(year=2025, quarter=1, is_actual=True, revenue=0.0)
        result = run_pipeline(_inputs(stored_statements={"income_statement": [q1]}))
        annual = [r for r in result.statements.income_statement if r.quarter is None]
        assert annual[0].revenue < fresh.statements.income_statement[0].revenue
        assert annual[1:] == fresh.statements.income_statement[1:]
        assert result.statements.is_balanced
