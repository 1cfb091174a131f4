"""API route modules."""

from phi_claims.api.routes import health, intake, patients

__all__ = ["health", "intake", "patients"]
