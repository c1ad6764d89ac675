"""
Consolidated models package.

IMPORTANT: Explicit imports only - no wildcards to prevent circular imports.
Use string-based forward references in relationships: relationship("Transaction", ...)
"""

# Base utilities
from app.models.base import generate_id, utc_now

# User model
from app.models.user import User

# Treasury models
from app.models.treasury import CashAccount, Transaction

# Digital twin models
from app.models.twin import DigitalTwinProfile, TwinScenario

# Import models
from app.models.imports import ImportJobStatus, ImportJob

# Cache models
from app.models.cache import ApiResponseCache


__all__ = [
    # Utilities
    "generate_id",
    "utc_now",
    # User
    "User",
    # Treasury
    "CashAccount",
    "Transaction",
    # Digital twin
    "DigitalTwinProfile",
    "TwinScenario",
    # Imports
    "ImportJobStatus",
    "ImportJob",
    # Cache
    "ApiResponseCache",
]
