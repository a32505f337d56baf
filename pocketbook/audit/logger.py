"""
Audit Logger

Every significant action in the system is logged, both to the local
structured log and, when configured, to the audit_events table.

The audit logger:
- Never breaks the flow it observes (storage failures are logged, not raised)
- Supports correlation IDs to trace the events of one operation
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from pocketbook.errors import ValidationError
from pocketbook.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from pocketbook.storage.interface import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit storage (for persistence), if one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("pocketbook.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns True if the storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_invoice_submitted(
        self,
        user_id: str,
        source: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.invoice_submitted(
            user_id=user_id,
            source=source,
            correlation_id=correlation_id,
        ))

    async def log_extraction_completed(
        self,
        user_id: str,
        item_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.extraction_completed(
            user_id=user_id,
            item_count=item_count,
            correlation_id=correlation_id,
        ))

    async def log_extraction_failed(
        self,
        user_id: str,
        error: Exception,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.extraction_failed(
            user_id=user_id,
            error_code=type(error).__name__,
            error_message=str(error),
            correlation_id=correlation_id,
            validation=isinstance(error, ValidationError),
        ))

    async def log_validation_warnings(
        self,
        user_id: str,
        warnings: list[str],
        correlation_id: UUID,
    ) -> None:
        if warnings:
            await self.log(AuditEventBuilder.validation_warning(
                user_id=user_id,
                warnings=warnings,
                correlation_id=correlation_id,
            ))

    async def log_pocket_resolved(
        self,
        user_id: str,
        pocket_id: str,
        explicit: bool,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.pocket_resolved(
            user_id=user_id,
            pocket_id=pocket_id,
            explicit=explicit,
            correlation_id=correlation_id,
        ))

    async def log_invoice_saved(
        self,
        user_id: str,
        invoice_id: str,
        pocket_id: Optional[str],
        amount: str,
        item_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.invoice_saved(
            user_id=user_id,
            invoice_id=invoice_id,
            pocket_id=pocket_id,
            amount=amount,
            item_count=item_count,
            correlation_id=correlation_id,
        ))

    async def log_invoice_deleted(
        self,
        user_id: str,
        invoice_id: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.invoice_deleted(
            user_id=user_id,
            invoice_id=invoice_id,
            correlation_id=correlation_id,
        ))

    async def log_pocket_changed(
        self,
        event_type: AuditEventType,
        user_id: str,
        pocket_id: str,
        description: str,
        correlation_id: UUID,
        details: Optional[dict] = None,
    ) -> None:
        await self.log(AuditEventBuilder.pocket_changed(
            event_type=event_type,
            user_id=user_id,
            pocket_id=pocket_id,
            description=description,
            correlation_id=correlation_id,
            details=details,
        ))

    async def log_currency_updated(
        self,
        user_id: str,
        currency: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.currency_updated(
            user_id=user_id,
            currency=currency,
            correlation_id=correlation_id,
        ))

    async def log_access_denied(
        self,
        user_id: Optional[str],
        action: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.access_denied(
            user_id=user_id,
            action=action,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_save_failed(
        self,
        user_id: Optional[str],
        action: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.save_failed(
            user_id=user_id,
            action=action,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        user_id: Optional[str] = None,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            user_id=user_id,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        user_id: Optional[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            user_id=user_id,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., invoice submission).
    Pass it through all subsequent operations.
    """
    return uuid4()
