"""
Core infrastructure: configuration, database, errors and logging
"""
