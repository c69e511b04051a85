"""
Runtime configuration for the command-dispatch core.
All values come from the environment; defaults suit local development.
"""

import os

# Debug flag is also exposed as a function so tests can flip it at runtime
DEBUG = os.getenv("DEBUG", "true").lower() == "true"

# HTTP surface
CORS_ALLOW_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",")
    if origin.strip()
]

# Store bootstrap
SEED_DATA_ENABLED = os.getenv("SEED_DATA_ENABLED", "true").lower() == "true"

# showTransactions deliberately holds its result to model a slow lookup
SHOW_TRANSACTIONS_DELAY_SEC = float(os.getenv("SHOW_TRANSACTIONS_DELAY_SEC", "3.0"))

# Approval console
APPROVAL_CONSOLE_REFRESH_SEC = float(os.getenv("APPROVAL_CONSOLE_REFRESH_SEC", "1.0"))
APPROVAL_API_URL = os.getenv("APPROVAL_API_URL", "http://127.0.0.1:8000")
APPROVAL_API_TIMEOUT_SEC = float(os.getenv("APPROVAL_API_TIMEOUT_SEC", "5.0"))

# In-memory history bounds
APPROVAL_HISTORY_LIMIT = int(os.getenv("APPROVAL_HISTORY_LIMIT", "500"))
SESSION_VIEW_LIMIT = int(os.getenv("SESSION_VIEW_LIMIT", "100"))

# Version string
VERSION = "1.0.0"


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "true").lower() == "true"


def show_transactions_delay() -> float:
    """Delay applied before showTransactions resolves, read on every call."""
    return float(os.getenv("SHOW_TRANSACTIONS_DELAY_SEC", str(SHOW_TRANSACTIONS_DELAY_SEC)))
