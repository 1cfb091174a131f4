"""
Security Services.

Provides the PHI redaction boundary applied to logs and outbound events.
"""

from phi_claims.services.security.phi_protection import (
    PHI_FIELDS,
    PHI_PATTERNS,
    REDACTION_MARKER,
    PHICategory,
    contains_phi,
    detect_phi,
    is_phi_field,
    redact,
    redact_text,
)

__all__ = [
    "PHI_FIELDS",
    "PHI_PATTERNS",
    "REDACTION_MARKER",
    "PHICategory",
    "contains_phi",
    "detect_phi",
    "is_phi_field",
    "redact",
    "redact_text",
]
