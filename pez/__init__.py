"""pez - a declarative plugin manager for the fish shell."""

__version__ = "0.3.0"
