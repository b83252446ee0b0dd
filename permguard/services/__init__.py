"""Permission engine services."""
