"""Lab interpretation and risk assessment backend."""
