"""Core infrastructure: logging and error taxonomy."""
