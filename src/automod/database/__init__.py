"""
Database package for automod.

Public API:
    - database: Global Database instance
    - get_db: Get the global Database instance
    - Database: Connection lifecycle plus ``read``/``transaction`` scopes
"""
