"""Command-line interface for pez."""
