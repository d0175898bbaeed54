"""FastAPI surface for CMM Calc."""
