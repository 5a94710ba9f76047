"""
FinModel — Recalculation Pipeline

The pure dependency chain behind every edit:

    resolve assumptions -> forecast -> annual summary -> statements
        -> DCF + sensitivity -> comparables -> variance

`run_pipeline` takes everything it needs as explicit inputs and returns every
output by value; persisting results is the caller's job. Validation happens up
front, so a ValidationError means nothing downstream ran. A DomainError in the
DCF step does not abort the chain: it is reported in `dcf_error` and the
comparison is computed without DCF targets.
"""

import hashlib
import json
import logging
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from typing import Optional

from ..config import BALANCE_TOLERANCE
from ..errors import DomainError
from .aggregation import aggregate_annual, aggregate_quarterly
from .assumptions import AssumptionSet, resolve_assumptions
from .forecast import generate_forecast
from .statements import coerce_row, derive_statements
from .types import (
    DCFValuationResult, StatementSet, ValuationComparisonResult, STATEMENT_ROW_TYPES,
)
from .valuation import (
    ComparableParameters, DCFParameters, build_parameters, comparable_valuation,
    value_dcf,
)
from .variance import VARIANCE_METRICS, calculate_variance

logger = logging.getLogger("finmodel.engines.pipeline")


@dataclass
class PipelineInputs:
    start_year: int
    end_year: int
    granularity: str = "monthly"
    shares_outstanding: float = 0.0
    base_assumptions: object = None             # AssumptionSet, mapping or None
    scenario_assumptions: object = None
    assumption_patch: Optional[dict] = None
    stored_statements: dict = field(default_factory=dict)
    actuals: list = field(default_factory=list)
    dcf_parameters: object = None               # DCFParameters, mapping or None
    comparable_parameters: object = None
    tolerance: float = BALANCE_TOLERANCE


@dataclass
class RecalculationResult:
    assumptions: AssumptionSet
    forecast: list
    annual: list
    statements: StatementSet
    dcf: Optional[DCFValuationResult]
    dcf_error: Optional[str]
    comparison: ValuationComparisonResult
    variance: list
    fingerprint: str

    @property
    def warnings(self) -> list:
        return self.statements.warnings


def _parameters(model_cls, source):
    if isinstance(source, model_cls):
        return source
    return build_parameters(model_cls, dict(source or {}))


def free_cash_flows(statements: StatementSet) -> list[float]:
    """Annual free cash flow series, in year order."""
    rows = sorted(
        (r for r in statements.cash_flow if r.quarter is None), key=lambda r: r.year
    )
    return [r.free_cash_flow for r in rows]


def _canonical_rows(kind: str, rows, years) -> list:
    """Actual rows inside the model years; derived rows are outputs, not inputs."""
    coerced = (coerce_row(kind, row) for row in rows)
    return [asdict(r) for r in coerced if r.is_actual and r.year in years]


def _canonical_actual(actual) -> dict:
    keys = ("period",) + tuple(VARIANCE_METRICS)
    if isinstance(actual, Mapping):
        return {k: actual.get(k) for k in keys}
    return {k: getattr(actual, k, None) for k in keys}


def input_fingerprint(
    inputs: PipelineInputs,
    assumptions: Optional[AssumptionSet] = None,
) -> str:
    """
    SHA-256 of the canonical JSON form of everything the pipeline reads.

    Equal fingerprints mean equal outputs, so callers may use it as a
    memoization key. Assumptions are fingerprinted after resolution.
    """
    if assumptions is None:
        assumptions = resolve_assumptions(
            inputs.base_assumptions, inputs.scenario_assumptions, inputs.assumption_patch
        )
    years = set(range(inputs.start_year, inputs.end_year + 1))
    payload = {
        "start_year": inputs.start_year,
        "end_year": inputs.end_year,
        "granularity": inputs.granularity,
        "shares_outstanding": inputs.shares_outstanding,
        "assumptions": assumptions.model_dump(),
        "statements": {
            kind: _canonical_rows(kind, inputs.stored_statements.get(kind, ()), years)
            for kind in sorted(STATEMENT_ROW_TYPES)
        },
        "actuals": [_canonical_actual(a) for a in inputs.actuals],
        "dcf": _parameters(DCFParameters, inputs.dcf_parameters).model_dump(),
        "comparables": _parameters(
            ComparableParameters, inputs.comparable_parameters
        ).model_dump(),
        "tolerance": inputs.tolerance,
    }
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def run_pipeline(inputs: PipelineInputs) -> RecalculationResult:
    """
    Execute the full chain for one model.

    Raises:
        ValidationError: bad assumptions, patch, parameters or year range.
    """
    assumptions = resolve_assumptions(
        inputs.base_assumptions, inputs.scenario_assumptions, inputs.assumption_patch
    )
    dcf_params = _parameters(DCFParameters, inputs.dcf_parameters)
    comparable_params = _parameters(ComparableParameters, inputs.comparable_parameters)

    forecast = generate_forecast(
        assumptions, inputs.start_year, inputs.end_year, inputs.granularity
    )
    annual = aggregate_annual(forecast)

    statements = derive_statements(
        annual + aggregate_quarterly(forecast),
        assumptions,
        range(inputs.start_year, inputs.end_year + 1),
        stored=inputs.stored_statements,
        shares_outstanding=inputs.shares_outstanding,
        tolerance=inputs.tolerance,
    )

    dcf, dcf_error = None, None
    try:
        dcf = value_dcf(dcf_params, free_cash_flows(statements), inputs.shares_outstanding)
    except DomainError as exc:
        dcf_error = str(exc)
        logger.warning(f"DCF skipped: {dcf_error}")

    comparison = comparable_valuation(
        comparable_params,
        statements.income_statement,
        inputs.shares_outstanding,
        current_share_price=dcf_params.current_share_price,
        dcf_price=dcf.dcf.target_price_per_share if dcf is not None else None,
    )

    variance = calculate_variance(forecast, inputs.actuals)

    fingerprint = input_fingerprint(inputs, assumptions)
    logger.info(
        f"Pipeline {inputs.start_year}-{inputs.end_year}: {len(forecast)} periods, "
        f"{len(statements.balance_sheet)} balance sheet rows, "
        f"{len(statements.warnings)} warnings, fingerprint {fingerprint[:12]}"
    )

    return RecalculationResult(
        assumptions=assumptions,
        forecast=forecast,
        annual=annual,
        statements=statements,
        dcf=dcf,
        dcf_error=dcf_error,
        comparison=comparison,
        variance=variance,
        fingerprint=fingerprint,
    )
