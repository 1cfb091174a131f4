"""
Core Enumerations for the Claims Intake Pipeline.
"""

from enum import Enum


# =============================================================================
# Integration Mode Enums
# =============================================================================


class IntegrationMode(str, Enum):
    """System integration mode."""

    DEMO = "demo"  # In-process store, queue, event bus and object store
    LIVE = "live"  # PostgreSQL, SQS, EventBridge and S3-compatible storage


# =============================================================================
# Record Status Enums
# =============================================================================


class IntakeStatus(str, Enum):
    """Lifecycle of a raw intake submission."""

    PENDING = "pending"
    VALIDATED = "validated"
    FAILED = "failed"


class ClaimStatus(str, Enum):
    """Canonical claim status.

    Only SUBMITTED is produced by this pipeline; later billing states are
    written by the billing collaborator.
    """

    SUBMITTED = "submitted"


# =============================================================================
# Worker Enums
# =============================================================================


class MessageOutcome(str, Enum):
    """Result of handling one queue message."""

    CLAIM_CREATED = "claim_created"
    ALREADY_PROCESSED = "already_processed"
    NOT_FOUND = "not_found"
    REJECTED = "rejected"
    DEAD_LETTERED = "dead_lettered"
    RETRY_SCHEDULED = "retry_scheduled"

    @property
    def acknowledges(self) -> bool:
        """Whether the queue message is deleted after this outcome."""
        return self is not MessageOutcome.RETRY_SCHEDULED


class EventType(str, Enum):
    """Domain event detail types."""

    CLAIM_CREATED = "ClaimCreated"
