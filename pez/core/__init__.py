"""Resolution and reconciliation engine."""
