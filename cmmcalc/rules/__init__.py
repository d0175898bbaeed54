"""Versioned rule sets and structured conversion-rule parameters."""
