"""
FinModel Configuration

All runtime settings come from environment variables with local-development
defaults. Nothing here opens connections or touches the filesystem.

    DATABASE_URL                 SQLAlchemy URL (default: SQLite file next to this package)
    SQLALCHEMY_ECHO              "true" to log SQL statements
    FINMODEL_LOG_LEVEL           DEBUG / INFO / WARNING / ERROR (default INFO)
    FINMODEL_CORS_ORIGINS        Comma-separated list of allowed origins
    FINMODEL_BALANCE_TOLERANCE   Largest |assets - (liabilities + equity)| still
                                 reported as balanced (currency units, default 100)
"""

import os
from pathlib import Path

_PACKAGE_DIR = Path(__file__).parent

DATABASE_URL = os.environ.get(
    "DATABASE_URL",
    f"sqlite:///{_PACKAGE_DIR / 'finmodel.db'}"
)

SQLALCHEMY_ECHO = os.environ.get("SQLALCHEMY_ECHO", "false").lower() == "true"

LOG_LEVEL = os.environ.get("FINMODEL_LOG_LEVEL", "INFO")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.environ.get(
        "FINMODEL_CORS_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173",
    ).split(",")
    if origin.strip()
]

BALANCE_TOLERANCE = float(os.environ.get("FINMODEL_BALANCE_TOLERANCE", "100"))
