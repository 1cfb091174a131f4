"""
Queue and event bus payloads.
"""

import json
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from phi_claims.core.enums import EventType
from phi_claims.schemas.records import CanonicalClaim, utcnow
from phi_claims.services.security.phi_protection import redact
from phi_claims.utils.errors import PoisonMessageError


class IntakeMessage(BaseModel):
    """Notification that an intake is ready for processing."""

    model_config = ConfigDict(extra="ignore")

    intake_id: str = Field(..., min_length=1)
    tenant_id: str = Field(..., min_length=1)
    timestamp: datetime = Field(default_factory=utcnow)

    def to_body(self) -> str:
        """JSON-encode for the queue."""
        return json.dumps(
            {
                "intake_id": self.intake_id,
                "tenant_id": self.tenant_id,
                "timestamp": self.timestamp.isoformat(),
            }
        )

    @classmethod
    def from_body(cls, body: str) -> "IntakeMessage":
        """Decode a queue body.

        Raises:
            PoisonMessageError: If the body is not a valid intake notification
        """
        try:
            data = json.loads(body)
        except (TypeError, json.JSONDecodeError) as e:
            raise PoisonMessageError("Message body is not valid JSON", original_error=e) from e

        if not isinstance(data, dict):
            raise PoisonMessageError("Message body is not a JSON object")

        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err["loc"])
            raise PoisonMessageError(
                f"Message body is missing or has invalid fields: {fields}", original_error=e
            ) from e


class DomainEvent(BaseModel):
    """Immutable, PHI-free fact published to an event bus."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    source: str
    detail_type: str = Field(..., alias="detailType")
    detail: dict[str, Any]

    @classmethod
    def claim_created(
        cls,
        claim: CanonicalClaim,
        source: str,
        timestamp: Optional[datetime] = None,
    ) -> "DomainEvent":
        """Build the ClaimCreated announcement for a committed claim."""
        return cls(
            source=source,
            detail_type=EventType.CLAIM_CREATED.value,
            detail={
                "claim_ref_id": claim.claim_ref_id,
                "tenant_id": claim.tenant_id,
                "status": claim.status_value,
                "timestamp": (timestamp or utcnow()).isoformat(),
            },
        )

    def redacted(self) -> "DomainEvent":
        """Copy with the detail passed through the redaction boundary."""
        return self.model_copy(update={"detail": redact(self.detail)})

    def to_dict(self) -> dict[str, Any]:
        """Wire form: ``{source, detailType, detail}``."""
        return {"source": self.source, "detailType": self.detail_type, "detail": self.detail}

    def to_entry(self, bus_name: str) -> dict[str, Any]:
        """EventBridge PutEvents entry."""
        return {
            "Source": self.source,
            "DetailType": self.detail_type,
            "Detail": json.dumps(self.detail),
            "EventBusName": bus_name,
        }
