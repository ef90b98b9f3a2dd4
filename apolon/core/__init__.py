"""Core engine: configuration, logging, metadata and migrations."""
