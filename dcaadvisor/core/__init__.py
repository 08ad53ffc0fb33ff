"""Core data model, errors and logging."""
