"""
FinModel API Routers

Each module in this package defines a FastAPI APIRouter for one domain of the
application (models, assumptions, scenarios, statements, valuation...).
Routers are included in the main FastAPI app in main.py.
"""
