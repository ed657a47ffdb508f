"""
dwh-store Test Suite.

This package contains:
- unit/: Unit tests (kinds, errors, config, stores on a temporary SQLite file)
- integration/: Integration tests (access layer, concurrency, CLI)
"""
