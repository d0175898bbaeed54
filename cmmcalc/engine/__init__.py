"""Calculation engine.

Expands work items into material breakdown lines under a resolved rule set,
applying waste factors and persisting every run for replay.
"""
