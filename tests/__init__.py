"""
Tests Package - Unit and Integration Tests

Test structure:
- tests/unit/ - Fast, isolated tests (predicates, dates, request models)
- tests/integration/ - Tests against a temporary SQLite database
- tests/conftest.py - Shared pytest fixtures (database, store, seed helpers)
"""
