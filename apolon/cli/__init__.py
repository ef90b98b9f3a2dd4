"""Command line interface for apolon."""
