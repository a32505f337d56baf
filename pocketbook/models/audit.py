"""
Audit Models for Pocketbook

Every significant action in the system is logged for audit purposes:
submissions, extraction outcomes, saves, deletes, sharing changes and
access denials. Audit logs are append-only.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step in the invoice pipeline has its own event type.
    """
    # Extraction
    INVOICE_SUBMITTED = "invoice_submitted"
    EXTRACTION_COMPLETED = "extraction_completed"
    EXTRACTION_FAILED = "extraction_failed"
    VALIDATION_FAILED = "validation_failed"
    VALIDATION_WARNING = "validation_warning"

    # Persistence
    POCKET_RESOLVED = "pocket_resolved"
    INVOICE_SAVED = "invoice_saved"
    INVOICE_DELETED = "invoice_deleted"
    SAVE_FAILED = "save_failed"

    # Pockets
    POCKET_CREATED = "pocket_created"
    POCKET_RENAMED = "pocket_renamed"
    POCKET_DELETED = "pocket_deleted"
    POCKET_SHARED = "pocket_shared"
    MEMBER_REMOVED = "member_removed"

    # Settings
    CURRENCY_UPDATED = "currency_updated"

    # Access control
    ACCESS_DENIED = "access_denied"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Who did it
    user_id: Optional[str] = None

    # What entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'invoice', 'pocket')"
    )
    entity_id: Optional[str] = None

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate the events of one operation"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.invoice_submitted(user_id, "text", correlation_id)
        event = AuditEventBuilder.invoice_saved(invoice_id, ...)
    """

    @staticmethod
    def invoice_submitted(
        user_id: str,
        source: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVOICE_SUBMITTED,
            user_id=user_id,
            entity_type="extraction",
            correlation_id=correlation_id,
            description=f"Invoice submitted as {source}",
            details={"source": source},
            is_user_action=True,
        )

    @staticmethod
    def extraction_completed(
        user_id: str,
        item_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_COMPLETED,
            user_id=user_id,
            entity_type="extraction",
            correlation_id=correlation_id,
            description=f"Extraction produced {item_count} items",
            details={"item_count": item_count},
        )

    @staticmethod
    def extraction_failed(
        user_id: str,
        error_code: str,
        error_message: str,
        correlation_id: UUID,
        validation: bool = False,
    ) -> AuditEvent:
        """validation=True: the model answered, but not with a usable invoice."""
        return AuditEvent(
            event_type=(
                AuditEventType.VALIDATION_FAILED if validation
                else AuditEventType.EXTRACTION_FAILED
            ),
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="extraction",
            correlation_id=correlation_id,
            description=(
                "Extraction output was unusable" if validation
                else "Extraction failed"
            ),
            error_code=error_code,
            error_message=error_message,
        )

    @staticmethod
    def validation_warning(
        user_id: str,
        warnings: list[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_WARNING,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="extraction",
            correlation_id=correlation_id,
            description=f"Extraction accepted with {len(warnings)} warnings",
            details={"warnings": warnings},
        )

    @staticmethod
    def pocket_resolved(
        user_id: str,
        pocket_id: str,
        explicit: bool,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.POCKET_RESOLVED,
            user_id=user_id,
            entity_type="pocket",
            entity_id=pocket_id,
            correlation_id=correlation_id,
            description=(
                "Invoice filed into requested pocket"
                if explicit
                else "Invoice filed into default pocket"
            ),
            details={"explicit": explicit},
        )

    @staticmethod
    def invoice_saved(
        user_id: str,
        invoice_id: str,
        pocket_id: Optional[str],
        amount: str,
        item_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVOICE_SAVED,
            user_id=user_id,
            entity_type="invoice",
            entity_id=invoice_id,
            correlation_id=correlation_id,
            description=f"Invoice saved: {amount} with {item_count} items",
            details={
                "pocket_id": pocket_id,
                "amount": amount,
                "item_count": item_count,
            },
        )

    @staticmethod
    def invoice_deleted(
        user_id: str,
        invoice_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVOICE_DELETED,
            user_id=user_id,
            entity_type="invoice",
            entity_id=invoice_id,
            correlation_id=correlation_id,
            description="Invoice deleted",
            is_user_action=True,
        )

    @staticmethod
    def pocket_changed(
        event_type: AuditEventType,
        user_id: str,
        pocket_id: str,
        description: str,
        correlation_id: UUID,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            user_id=user_id,
            entity_type="pocket",
            entity_id=pocket_id,
            correlation_id=correlation_id,
            description=description,
            details=details or {},
            is_user_action=True,
        )

    @staticmethod
    def currency_updated(
        user_id: str,
        currency: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CURRENCY_UPDATED,
            user_id=user_id,
            entity_type="user",
            entity_id=user_id,
            correlation_id=correlation_id,
            description=f"Currency set to {currency}",
            details={"currency": currency},
            is_user_action=True,
        )

    @staticmethod
    def access_denied(
        user_id: Optional[str],
        action: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCESS_DENIED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Access denied: {action}",
            error_message=reason,
            details={"action": action},
        )

    @staticmethod
    def save_failed(
        user_id: Optional[str],
        action: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            description=f"Database write failed during {action}",
            error_message=error_message,
            correlation_id=correlation_id,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        user_id: Optional[str] = None,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            description=f"System error: {error_type}",
            error_code=error_type,
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        user_id: Optional[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
