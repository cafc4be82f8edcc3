"""Integration tests against a temporary SQLite database."""
