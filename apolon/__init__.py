"""Apolon: schema snapshots, diffing and versioned migrations for PostgreSQL."""

__version__ = "0.1.0"
