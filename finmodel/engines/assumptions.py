"""
FinModel — Assumption Resolver

Selects the effective parameter set for one forecast:

    1. Scenario assumptions, if present, replace the base set wholesale.
    2. An edit patch (partial field map) is merged field-by-field over
       whichever set is active.
    3. The merged record is validated; any non-numeric or out-of-domain
       field raises ValidationError before the rest of the pipeline runs.

Does NOT read or write storage. Stored rows are passed in as mappings.
"""

from typing import Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..errors import ValidationError


class AssumptionSet(BaseModel):
    """
    Fully populated, immutable set of business assumptions.

    Rates are decimals (0.10 = 10%). `revenue_growth_rate` and `churn_rate`
    are annual; `avg_revenue_per_unit` is revenue per customer per month.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    revenue_growth_rate: float = Field(0.10, ge=-1.0, allow_inf_nan=False)
    churn_rate: float = Field(0.05, ge=0.0, allow_inf_nan=False)
    avg_revenue_per_unit: float = Field(100.0, ge=0.0, allow_inf_nan=False)
    initial_customers: float = Field(100.0, ge=0.0, allow_inf_nan=False)

    cogs_percent: float = Field(0.30, ge=0.0, allow_inf_nan=False)
    sales_marketing_percent: float = Field(0.20, ge=0.0, allow_inf_nan=False)
    rd_percent: float = Field(0.15, ge=0.0, allow_inf_nan=False)
    ga_percent: float = Field(0.10, ge=0.0, allow_inf_nan=False)
    depreciation_percent: float = Field(0.01, ge=0.0, allow_inf_nan=False)
    tax_rate: float = Field(0.25, ge=0.0, le=1.0, allow_inf_nan=False)

    capex_percent: float = Field(0.05, ge=0.0, allow_inf_nan=False)
    ar_percent: float = Field(0.15, ge=0.0, allow_inf_nan=False)
    ap_percent: float = Field(0.15, ge=0.0, allow_inf_nan=False)
    inventory_percent: float = Field(0.03, ge=0.0, allow_inf_nan=False)

    initial_cash: float = Field(100000.0, ge=0.0, allow_inf_nan=False)
    monthly_burn_override: Optional[float] = Field(None, gt=0.0, allow_inf_nan=False)

    # Growth decay: g(y) = terminal + (initial - terminal) * (1 - decay)^y
    growth_decay_rate: float = Field(0.0, ge=0.0, le=1.0, allow_inf_nan=False)
    terminal_growth_rate: float = Field(0.03, ge=-1.0, allow_inf_nan=False)

    # Net margin the projection converges to by the last model year (None = off)
    target_net_margin: Optional[float] = Field(None, gt=-1.0, lt=1.0, allow_inf_nan=False)

    # Capital structure of the opening balance sheet
    opening_debt: float = Field(0.0, ge=0.0, allow_inf_nan=False)
    annual_debt_repayment: float = Field(0.0, ge=0.0, allow_inf_nan=False)


ASSUMPTION_FIELDS = tuple(AssumptionSet.model_fields)

AssumptionSource = Union[AssumptionSet, Mapping, None]

# (growth multiplier, churn multiplier) applied to the base set
SCENARIO_PRESETS = {
    "optimistic": (1.3, 0.6),
    "base": (1.0, 1.0),
    "pessimistic": (0.7, 1.5),
}


def _as_values(source: AssumptionSource) -> dict:
    """Stored record -> plain dict of known, non-null assumption fields."""
    if source is None:
        return {}
    if isinstance(source, AssumptionSet):
        return source.model_dump()
    return {
        key: value
        for key, value in source.items()
        if key in ASSUMPTION_FIELDS and value is not None
    }


def _field_errors(exc: PydanticValidationError) -> dict:
    errors = {}
    for err in exc.errors():
        name = ".".join(str(part) for part in err["loc"]) or "__root__"
        errors[name] = err["msg"]
    return errors


def validate_assumptions(values: Mapping) -> AssumptionSet:
    """Build an AssumptionSet, converting pydantic errors into ValidationError."""
    try:
        return AssumptionSet.model_validate(dict(values))
    except PydanticValidationError as exc:
        errors = _field_errors(exc)
        raise ValidationError(
            f"Invalid assumptions: {', '.join(sorted(errors))}", errors=errors
        ) from exc


def resolve_assumptions(
    base: AssumptionSource = None,
    scenario: AssumptionSource = None,
    patch: Optional[Mapping] = None,
) -> AssumptionSet:
    """
    Return the effective AssumptionSet for one forecast.

    Args:
        base: The model's base assumptions (stored record or AssumptionSet).
        scenario: Scenario assumptions. When given, used instead of `base`
                  (full override, not a delta).
        patch: Partial field map merged over the active set. Unknown keys are
               rejected; a None value resets that field to its default.

    Raises:
        ValidationError: unknown patch field, non-numeric or out-of-domain value.
    """
    values = _as_values(scenario if scenario is not None else base)

    if patch:
        unknown = sorted(set(patch) - set(ASSUMPTION_FIELDS))
        if unknown:
            raise ValidationError(
                f"Unknown assumption fields: {', '.join(unknown)}",
                errors={name: "unknown field" for name in unknown},
            )
        for name, value in patch.items():
            if value is None:
                values.pop(name, None)
            else:
                values[name] = value

    return validate_assumptions(values)


def derive_scenario_assumptions(base: AssumptionSource, scenario_type: str) -> AssumptionSet:
    """
    Build a full scenario assumption set from the base set.

    Optimistic scenarios grow 30% faster and churn 40% less; pessimistic ones
    grow 30% slower and churn 50% more. Every other field is copied.
    """
    if scenario_type not in SCENARIO_PRESETS:
        raise ValidationError(
            f"Unknown scenario type '{scenario_type}'",
            errors={"type": f"must be one of {sorted(SCENARIO_PRESETS)}"},
        )
    growth_mult, churn_mult = SCENARIO_PRESETS[scenario_type]
    effective = resolve_assumptions(base)
    return resolve_assumptions(effective, patch={
        "revenue_growth_rate": effective.revenue_growth_rate * growth_mult,
        "churn_rate": effective.churn_rate * churn_mult,
    })
