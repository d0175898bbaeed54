"""CMM Calc - taxonomy-driven, rule-versioned material quantity takeoff."""

__version__ = "1.0.0"
