"""HTTP ingest boundary."""
