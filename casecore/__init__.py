"""
Case lifecycle core: identifiers, event log and status projection for a law-firm portal
"""

__version__ = "1.0.0"
