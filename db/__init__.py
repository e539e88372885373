"""
db/ - Database Layer
====================
Handles the PostgreSQL connection pool, transactions and schema initialization.
This layer only depends on config, exceptions and logging.
"""
