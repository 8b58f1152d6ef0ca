"""Database models — re-exports all models.

Import from here:  from app.models import Transaction, CompanySettings, ...
Or from submodules: from app.models.ledger import Transaction
"""

from .base import Base  # noqa: F401

# QuickBooks connection
from .company import CompanySettings  # noqa: F401

# Ledgers
from .ledger import (  # noqa: F401
    CATEGORIES,
    MOVEMENT_TYPES,
    AccrualTransaction,
    Invoice,
    Transaction,
)
