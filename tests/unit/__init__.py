"""Unit tests: no database access."""
