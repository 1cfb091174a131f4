"""Core enumerations and service wiring."""
