"""Configuration and persisted formats."""
