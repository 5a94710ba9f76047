"""
FinModel — Discounting Module

End-of-period discounting for DCF calculations.

Formula:
    PV = CF / (1 + WACC)^n

where n = 1 for the first projected year: cashflows are assumed to arrive at
the end of each year, so even the first projection year is discounted once.
"""


def discount_factor(periods: int, rate: float) -> float:
    """
    Returns the divisor for a cashflow `periods` years out.

    PV = CF / discount_factor(n, rate)
    """
    return (1 + rate) ** periods


def discount_cashflow(cashflow: float, periods: int, rate: float) -> float:
    """Present value of a single cashflow received at the end of year `periods`."""
    if cashflow == 0:
        return 0.0
    return cashflow / discount_factor(periods, rate)


def present_value(cashflows: list[float], rate: float) -> float:
    """
    NPV of a cashflow series where cashflows[i] arrives at the end of year i + 1.

    Summed in order so the result is reproducible bit for bit.
    """
    total = 0.0
    for i, cashflow in enumerate(cashflows):
        total += discount_cashflow(cashflow, i + 1, rate)
    return total
