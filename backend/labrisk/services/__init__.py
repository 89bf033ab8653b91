"""Lab interpretation services."""
