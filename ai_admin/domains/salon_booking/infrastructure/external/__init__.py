"""External system adapters for salon booking."""
