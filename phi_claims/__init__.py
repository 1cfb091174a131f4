"""
PHI Claims Intake Pipeline.

Ingests claim submissions, resolves patient identities, persists canonical
claims under per-tenant isolation and emits PHI-free domain events.
"""

__version__ = "1.0.0"
