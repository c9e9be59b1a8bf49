"""Git backends."""
