"""
Data Models Package

This package contains all Pydantic models used in Pocketbook.
All data flowing through the system must conform to these schemas.
"""

from pocketbook.models.invoice import (
    AnalysisReport,
    DashboardSummary,
    Identity,
    ImageInput,
    InvoiceDraft,
    InvoiceItemDraft,
    InvoiceItemRecord,
    InvoicePage,
    InvoiceRecord,
    ItemCategory,
    LabeledAmount,
    OperationResult,
    PocketMemberInfo,
    PocketRecord,
    UserSettings,
    View,
)
from pocketbook.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Invoice models
    "AnalysisReport",
    "DashboardSummary",
    "Identity",
    "ImageInput",
    "InvoiceDraft",
    "InvoiceItemDraft",
    "InvoiceItemRecord",
    "InvoicePage",
    "InvoiceRecord",
    "ItemCategory",
    "LabeledAmount",
    "OperationResult",
    "PocketMemberInfo",
    "PocketRecord",
    "UserSettings",
    "View",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
