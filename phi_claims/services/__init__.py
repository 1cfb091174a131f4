"""Domain services for the intake pipeline."""
