"""Persisted calculation runs."""
