"""
FinModel calculation engines.

Pure functions only: no database access, no clock, no randomness. Dependency
order (leaves first): assumptions -> forecast -> aggregation -> statements ->
valuation -> variance, chained together by pipeline.run_pipeline.
"""
