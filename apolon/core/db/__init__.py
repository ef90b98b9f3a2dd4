"""Database engine factory."""
