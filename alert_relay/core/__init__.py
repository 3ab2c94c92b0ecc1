"""
Core package — cross-cutting concerns.

Modules:
    config      — environment variables & settings
    logging     — structured JSON logging
    errors      — exception hierarchy & handlers
    middleware  — request logging / correlation IDs
    health      — health check aggregation
    database    — async SQLAlchemy engine (SQLite or PostgreSQL)
    cache       — in-process TTL cache
"""
