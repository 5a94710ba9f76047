"""
FinModel Package

FastAPI backend for three-statement financial models. An assumption or
actual-cell edit cascades through the forecast, the income statement,
balance sheet and cash flow, the DCF and comparable valuation, and the
forecast-vs-actual variance.
"""
