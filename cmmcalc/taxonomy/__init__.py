"""L1/L2/L3 taxonomy catalog and reference data seeding."""
