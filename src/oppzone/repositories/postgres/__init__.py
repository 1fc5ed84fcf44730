"""Postgres-backed repository implementations."""
