"""
Models package - imports all models for SQLAlchemy
"""

from casecore.core.database import Base
from .client import Client, IdentifierRegistryEntry
from .case import Case, CaseEvent

__all__ = [
    "Base",
    "Client", "IdentifierRegistryEntry",
    "Case", "CaseEvent",
]
