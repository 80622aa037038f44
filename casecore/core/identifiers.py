"""
Identifier kinds and their fixed-width display form
"""

from enum import Enum

from casecore.core.config import settings

class IdentifierKind(str, Enum):
    """Entity kinds that receive allocated numeric identifiers"""
    CLIENT = "client"
    CASE = "case"

def identifier_range(kind: IdentifierKind) -> tuple:
    """Inclusive (low, high) bounds of the configured identifier space"""
    if kind == IdentifierKind.CLIENT:
        return settings.CLIENT_ID_MIN, settings.CLIENT_ID_MAX
    return settings.CASE_ID_MIN, settings.CASE_ID_MAX

def format_identifier(kind: IdentifierKind, value: int) -> str:
    """Zero-padded display form, as wide as the upper bound of the space"""
    width = len(str(identifier_range(kind)[1]))
    return f"{value:0{width}d}"

def format_client_id(value: int) -> str:
    return format_identifier(IdentifierKind.CLIENT, value)

def format_case_id(value: int) -> str:
    return format_identifier(IdentifierKind.CASE, value)
