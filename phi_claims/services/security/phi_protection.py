"""
PHI Protection Service.

Redaction boundary for Protected Health Information (PHI). Every structured
log record outside development and every payload handed to the event bus
passes through ``redact``.

Redaction is idempotent: the marker itself never matches a field name or a
pattern, so ``redact(redact(x)) == redact(x)``.
"""

import re
from enum import Enum
from typing import Any

REDACTION_MARKER = "[REDACTED]"


class PHICategory(str, Enum):
    """Free-text PHI categories detected by pattern."""

    SSN = "ssn"
    MEMBER_ID = "member_id"
    DATE_OF_BIRTH = "date_of_birth"
    EMAIL = "email"
    PHONE = "phone"


# Field names whose values are replaced wholesale, compared case-insensitively
PHI_FIELDS: frozenset[str] = frozenset(
    {
        "first_name",
        "last_name",
        "full_name",
        "dob",
        "date_of_birth",
        "ssn",
        "member_id",
        "diagnosis_codes",
        "procedure_codes",
        "patient_id",
        "insurance_card",
        "raw_payload",
    }
)

# Applied in order; SSN runs before phone so nine-digit runs are caught first
PHI_PATTERNS: dict[PHICategory, re.Pattern[str]] = {
    PHICategory.SSN: re.compile(r"\b\d{3}-?\d{2}-?\d{4}\b"),
    PHICategory.MEMBER_ID: re.compile(r"\b[A-Z]{2,3}\d{6,12}\b"),
    PHICategory.DATE_OF_BIRTH: re.compile(
        r"\b(?:0[1-9]|1[0-2])/(?:0[1-9]|[12]\d|3[01])/\d{4}\b"
    ),
    PHICategory.EMAIL: re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
    PHICategory.PHONE: re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b"),
}


def is_phi_field(field_name: str) -> bool:
    """Check if a field name is on the PHI field list."""
    return field_name.lower() in PHI_FIELDS


def detect_phi(text: str) -> list[tuple[str, str, int, int]]:
    """Detect potential PHI in unstructured text.

    Args:
        text: Text to scan

    Returns:
        List of (category, matched_text, start, end) tuples
    """
    findings = []
    for category, pattern in PHI_PATTERNS.items():
        for match in pattern.finditer(text):
            findings.append((category.value, match.group(), match.start(), match.end()))
    return findings


def redact_text(text: str) -> str:
    """Replace PHI-shaped substrings with the redaction marker."""
    for pattern in PHI_PATTERNS.values():
        text = pattern.sub(REDACTION_MARKER, text)
    return text


def redact(value: Any) -> Any:
    """Recursively redact PHI from a value.

    Args:
        value: dict, list, tuple, string or scalar

    Returns:
        A redacted copy; the input is never mutated
    """
    if isinstance(value, str):
        return redact_text(value)

    if isinstance(value, dict):
        redacted = {}
        for key, item in value.items():
            if isinstance(key, str) and is_phi_field(key):
                redacted[key] = REDACTION_MARKER
            else:
                redacted[key] = redact(item)
        return redacted

    if isinstance(value, list):
        return [redact(item) for item in value]

    if isinstance(value, tuple):
        return tuple(redact(item) for item in value)

    return value


def contains_phi(value: Any) -> bool:
    """Check whether redaction would change the value."""
    return redact(value) != value
