"""
Main Orchestrator for Pocketbook

This module ties the components together and defines the entry
operations:
1. Invoice capture (input -> extract -> validate -> pocket -> save)
2. Invoice reads and deletes
3. Pocket management and sharing
4. Read views (dashboard, analysis)
5. User settings

Every entry operation:
- takes the authenticated Identity as an explicit argument
- returns an OperationResult and never raises
- logs the underlying failure where it is caught
"""

import calendar
from datetime import date, datetime
from typing import NamedTuple, Optional
from uuid import UUID

import structlog

from pocketbook.access import AccessGate, require_identity
from pocketbook.agents import InvoiceExtractionAgent
from pocketbook.audit import AuditLogger, create_correlation_id
from pocketbook.config import AppSettings, get_settings
from pocketbook.currency import DEFAULT_CURRENCY, format_amount, is_supported
from pocketbook.errors import (
    ExtractionError,
    ExtractionServiceError,
    InvalidInputError,
    NotFoundError,
    PocketbookError,
    StorageError,
    UnauthorizedError,
    ValidationError,
)
from pocketbook.models.audit import AuditEventType
from pocketbook.models.invoice import (
    AnalysisReport,
    DashboardSummary,
    Identity,
    ImageInput,
    InvoicePage,
    InvoiceRecord,
    OperationResult,
    PocketMemberInfo,
    PocketRecord,
    UserSettings,
    View,
)
from pocketbook.pockets import PocketResolver
from pocketbook.storage import (
    Database,
    InvoiceStorageInterface,
    PocketStorageInterface,
    SqlAuditStorage,
    SqlInvoiceStorage,
    SqlPocketStorage,
    SqlUserStorage,
    UserStorageInterface,
)
from pocketbook.validation import ExtractionValidator
from pocketbook.views import INVOICE_VIEWS, POCKET_VIEWS, ViewCache


UNEXPECTED_ERROR = "Something went wrong. Please try again."
MAX_POCKET_NAME_LENGTH = 100
RECENT_INVOICES_LIMIT = 5
TOP_ITEMS_LIMIT = 10


def month_range(
    month: Optional[str] = None,
    today: Optional[date] = None,
) -> tuple[date, date, str]:
    """
    Resolve a "YYYY-MM" string to (first day, last day, label).

    Defaults to the month of `today`.
    """
    if month:
        try:
            first = datetime.strptime(month.strip(), "%Y-%m").date()
        except ValueError as e:
            raise InvalidInputError(f"Invalid month '{month}', expected YYYY-MM") from e
    else:
        first = (today or date.today()).replace(day=1)

    last_day = calendar.monthrange(first.year, first.month)[1]
    return first, first.replace(day=last_day), first.strftime("%Y-%m")


def _clean_pocket_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if not name:
        raise InvalidInputError("Pocket name is required")
    if len(name) > MAX_POCKET_NAME_LENGTH:
        raise InvalidInputError(
            f"Pocket name must be at most {MAX_POCKET_NAME_LENGTH} characters"
        )
    return name


async def preferred_currency(
    identity: Identity,
    user_storage: Optional[UserStorageInterface],
    settings: AppSettings,
) -> str:
    """Stored preference, then the identity's, then the configured default."""
    user = await user_storage.get_user(identity.user_id) if user_storage else None
    return (
        (user.currency if user else None)
        or identity.currency
        or settings.default_currency
        or DEFAULT_CURRENCY
    )


class _Flow:
    """Shared failure handling for all flows."""

    def __init__(
        self,
        audit_logger: Optional[AuditLogger] = None,
        cache: Optional[ViewCache] = None,
    ):
        self._audit_logger = audit_logger or AuditLogger()
        self._cache = cache or ViewCache()
        self._logger = structlog.get_logger(type(self).__module__)

    async def _handle_failure(
        self,
        error: Exception,
        action: str,
        identity: Optional[Identity],
        correlation_id: UUID,
    ) -> OperationResult:
        """
        Convert any failure into a failed OperationResult.

        Expected failures are audited with their category;
        anything else is logged with its traceback and reported
        with a generic message.
        """
        user_id = identity.user_id if identity else None

        if not isinstance(error, PocketbookError):
            self._logger.error(
                "unexpected_error",
                action=action,
                user_id=user_id,
                correlation_id=str(correlation_id),
                exc_info=error,
            )
            await self._audit_logger.log_error(
                error_type=type(error).__name__,
                error_message=str(error),
                user_id=user_id,
                details={"action": action},
                correlation_id=correlation_id,
            )
            return OperationResult.fail(UNEXPECTED_ERROR)

        if isinstance(error, UnauthorizedError):
            await self._audit_logger.log_access_denied(
                user_id=user_id,
                action=action,
                reason=str(error),
                correlation_id=correlation_id,
            )
        elif isinstance(error, ExtractionServiceError):
            await self._audit_logger.log_external_service_error(
                service="gemini",
                error_message=str(error),
                user_id=user_id,
                correlation_id=correlation_id,
            )
        elif isinstance(error, (ExtractionError, ValidationError)):
            await self._audit_logger.log_extraction_failed(
                user_id=user_id,
                error=error,
                correlation_id=correlation_id,
            )
        elif isinstance(error, StorageError):
            await self._audit_logger.log_save_failed(
                user_id=user_id,
                action=action,
                error_message=str(error),
                correlation_id=correlation_id,
            )
        else:
            await self._audit_logger.log_error(
                error_type=type(error).__name__,
                error_message=str(error),
                user_id=user_id,
                details={"action": action},
                correlation_id=correlation_id,
            )

        return OperationResult.fail(error.user_message)


class InvoiceFlow(_Flow):
    """
    Orchestrates invoice capture, reads and deletes.

    Capture flow:
    1. Identity  -> no identity, no work
    2. Input     -> text or image required (no model call otherwise)
    3. Extract   -> one bounded Gemini call
    4. Validate  -> JSON object with the expected shape
    5. Pocket    -> explicit pocket, or the default one
    6. Save      -> invoice + items in one transaction
    7. Views     -> home, list and analysis are invalidated
    """

    def __init__(
        self,
        invoice_storage: InvoiceStorageInterface,
        pocket_storage: PocketStorageInterface,
        agent: Optional[InvoiceExtractionAgent] = None,
        validator: Optional[ExtractionValidator] = None,
        resolver: Optional[PocketResolver] = None,
        gate: Optional[AccessGate] = None,
        cache: Optional[ViewCache] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        super().__init__(audit_logger=audit_logger, cache=cache)
        self._settings = settings or get_settings().app
        self._invoices = invoice_storage
        self._gate = gate or AccessGate(pocket_storage)
        self._agent = agent or InvoiceExtractionAgent()
        self._validator = validator or ExtractionValidator(self._settings)
        self._resolver = resolver or PocketResolver(
            pocket_storage, gate=self._gate, settings=self._settings
        )

    def _check_input(
        self,
        raw_text: Optional[str],
        image: Optional[ImageInput],
    ) -> str:
        """
        Reject unusable input before anything expensive happens.

        Returns the input source ("text" or "image").
        """
        if raw_text and raw_text.strip():
            return "text"
        if image is None:
            raise InvalidInputError("Please provide either text or an image.")

        if image.size_bytes == 0:
            raise InvalidInputError("The uploaded image is empty.")
        if image.size_bytes > self._settings.max_upload_size_bytes:
            raise InvalidInputError(
                f"Image is too large (max {self._settings.max_upload_size_mb} MB)."
            )
        if image.mime_type not in self._settings.supported_image_types_list:
            raise InvalidInputError(f"Unsupported image type: {image.mime_type}")
        return "image"

    async def process_invoice(
        self,
        identity: Optional[Identity],
        raw_text: Optional[str] = None,
        image: Optional[ImageInput] = None,
        pocket_id: Optional[str] = None,
        timeout: Optional[float] = None,
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult[InvoiceRecord]:
        """
        Turn a receipt into a saved invoice.

        Args:
            identity: Authenticated user (None -> Unauthorized)
            raw_text: Receipt text or voice transcript
            image: Receipt photo
            pocket_id: Target pocket; empty -> default pocket
            timeout: Override for the extraction timeout (seconds)

        Returns:
            OperationResult with the saved invoice and its items
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            identity = require_identity(identity)
            source = self._check_input(raw_text, image)

            await self._audit_logger.log_invoice_submitted(
                user_id=identity.user_id,
                source=source,
                correlation_id=correlation_id,
            )

            raw_json = await self._agent.extract(
                raw_text=raw_text if source == "text" else None,
                image=image if source == "image" else None,
                timeout=timeout,
            )
            draft = self._validator.validate(raw_json)

            await self._audit_logger.log_extraction_completed(
                user_id=identity.user_id,
                item_count=len(draft.items),
                correlation_id=correlation_id,
            )
            await self._audit_logger.log_validation_warnings(
                user_id=identity.user_id,
                warnings=self._validator.collect_warnings(draft),
                correlation_id=correlation_id,
            )

            target_pocket_id, explicit = await self._resolver.resolve(identity, pocket_id)
            await self._audit_logger.log_pocket_resolved(
                user_id=identity.user_id,
                pocket_id=target_pocket_id,
                explicit=explicit,
                correlation_id=correlation_id,
            )

            invoice = await self._invoices.save_invoice(
                draft=draft,
                pocket_id=target_pocket_id,
                creator_user_id=identity.user_id,
                raw_text=raw_text if source == "text" else self._settings.image_placeholder_text,
            )
            self._cache.invalidate(*INVOICE_VIEWS)

            await self._audit_logger.log_invoice_saved(
                user_id=identity.user_id,
                invoice_id=invoice.id,
                pocket_id=invoice.pocket_id,
                amount=str(invoice.total_amount),
                item_count=invoice.item_count,
                correlation_id=correlation_id,
            )
            return OperationResult.ok(invoice)

        except Exception as e:
            return await self._handle_failure(e, "process_invoice", identity, correlation_id)

    async def get_invoice(
        self,
        identity: Optional[Identity],
        invoice_id: str,
    ) -> OperationResult[InvoiceRecord]:
        """Load one invoice the user may see."""
        correlation_id = create_correlation_id()
        try:
            identity = require_identity(identity)
            invoice = await self._invoices.get_invoice(invoice_id)
            if invoice is None:
                raise NotFoundError("Invoice not found")
            await self._gate.ensure_can_view_invoice(identity, invoice)
            return OperationResult.ok(invoice)
        except Exception as e:
            return await self._handle_failure(e, "get_invoice", identity, correlation_id)

    async def delete_invoice(
        self,
        identity: Optional[Identity],
        invoice_id: str,
    ) -> OperationResult[None]:
        """Delete an invoice (creator or pocket owner only)."""
        correlation_id = create_correlation_id()
        try:
            identity = require_identity(identity)
            invoice = await self._invoices.get_invoice(invoice_id)
            if invoice is None:
                raise NotFoundError("Invoice not found")
            await self._gate.ensure_can_delete_invoice(identity, invoice)

            if not await self._invoices.delete_invoice(invoice_id):
                # Deleted concurrently between the read and the delete
                raise NotFoundError("Invoice not found")
            self._cache.invalidate(*INVOICE_VIEWS)

            await self._audit_logger.log_invoice_deleted(
                user_id=identity.user_id,
                invoice_id=invoice_id,
                correlation_id=correlation_id,
            )
            return OperationResult.ok()
        except Exception as e:
            return await self._handle_failure(e, "delete_invoice", identity, correlation_id)

    async def list_invoices(
        self,
        identity: Optional[Identity],
        page: int = 1,
        query: str = "",
        pocket_id: Optional[str] = None,
        month: Optional[str] = None,
    ) -> OperationResult[InvoicePage]:
        """
        One page of the invoices the user may see in a month.

        Searches the summary case-insensitively. A full page sets
        has_more, so the last page may come back empty.
        """
        correlation_id = create_correlation_id()
        try:
            identity = require_identity(identity)
            if page < 1:
                raise InvalidInputError("Page must be 1 or greater")
            date_from, date_to, label = month_range(month)
            query = (query or "").strip()

            cache_key = (identity.user_id, page, query, pocket_id, label)
            cached = self._cache.get(View.INVOICES, cache_key)
            if cached is not None:
                return OperationResult.ok(cached)

            invoice_filter = await self._gate.visibility_filter(
                identity,
                pocket_id=pocket_id or None,
                date_from=date_from,
                date_to=date_to,
                query=query or None,
            )
            page_size = self._settings.invoices_per_page
            data = await self._invoices.list_invoices(
                invoice_filter,
                limit=page_size,
                offset=(page - 1) * page_size,
            )
            has_more = len(data) == page_size
            result = InvoicePage(
                data=data,
                has_more=has_more,
                next_page=page + 1 if has_more else None,
            )
            self._cache.set(View.INVOICES, cache_key, result)
            return OperationResult.ok(result)
        except Exception as e:
            return await self._handle_failure(e, "list_invoices", identity, correlation_id)


class PocketFlow(_Flow):
    """Pocket management and sharing."""

    def __init__(
        self,
        pocket_storage: PocketStorageInterface,
        user_storage: UserStorageInterface,
        gate: Optional[AccessGate] = None,
        cache: Optional[ViewCache] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(audit_logger=audit_logger, cache=cache)
        self._pockets = pocket_storage
        self._users = user_storage
        self._gate = gate or AccessGate(pocket_storage)

    async def list_pockets(
        self,
        identity: Optional[Identity],
    ) -> OperationResult[list[PocketRecord]]:
        """Owned pockets, then pockets shared with the user."""
        correlation_id = create_correlation_id()
        try:
            identity = require_identity(identity)
            cached = self._cache.get(View.POCKETS, identity.user_id)
            if cached is not None:
                return OperationResult.ok(cached)

            pockets = await self._gate.accessible_pockets(identity)
            self._cache.set(View.POCKETS, identity.user_id, pockets)
            return OperationResult.ok(pockets)
        except Exception as e:
            return await self._handle_failure(e, "list_pockets", identity, correlation_id)

    async def create_pocket(
        self,
        identity: Optional[Identity],
        name: str,
    ) -> OperationResult[PocketRecord]:
        correlation_id = create_correlation_id()
        try:
            identity = require_identity(identity)
            pocket = await self._pockets.create_pocket(
                identity.user_id, _clean_pocket_name(name)
            )
            self._cache.invalidate(*POCKET_VIEWS)
            await self._audit_logger.log_pocket_changed(
                event_type=AuditEventType.POCKET_CREATED,
                user_id=identity.user_id,
                pocket_id=pocket.id,
                description=f"Pocket created: {pocket.name}",
                correlation_id=correlation_id,
            )
            return OperationResult.ok(pocket)
        except Exception as e:
            return await self._handle_failure(e, "create_pocket", identity, correlation_id)

    async def rename_pocket(
        self,
        identity: Optional[Identity],
        pocket_id: str,
        name: str,
    ) -> OperationResult[PocketRecord]:
        correlation_id = create_correlation_id()
        try:
            identity = require_identity(identity)
            new_name = _clean_pocket_name(name)
            old = await self._gate.get_owned_pocket(identity, pocket_id)

            pocket = await self._pockets.rename_pocket(pocket_id, new_name)
            self._cache.invalidate(*POCKET_VIEWS)
            await self._audit_logger.log_pocket_changed(
                event_type=AuditEventType.POCKET_RENAMED,
                user_id=identity.user_id,
                pocket_id=pocket_id,
                description=f"Pocket renamed: {old.name} -> {pocket.name}",
                correlation_id=correlation_id,
                details={"old_name": old.name, "new_name": pocket.name},
            )
            return OperationResult.ok(pocket)
        except Exception as e:
            return await self._handle_failure(e, "rename_pocket", identity, correlation_id)

    async def delete_pocket(
        self,
        identity: Optional[Identity],
        pocket_id: str,
    ) -> OperationResult[None]:
        """
        Delete a pocket the user owns.

        Its memberships go with it; its invoices stay, unfiled,
        visible to their creators.
        """
        correlation_id = create_correlation_id()
        try:
            identity = require_identity(identity)
            pocket = await self._gate.get_owned_pocket(identity, pocket_id)

            if not await self._pockets.delete_pocket(pocket_id):
                raise NotFoundError("Pocket not found")
            self._cache.invalidate(*POCKET_VIEWS)
            await self._audit_logger.log_pocket_changed(
                event_type=AuditEventType.POCKET_DELETED,
                user_id=identity.user_id,
                pocket_id=pocket_id,
                description=f"Pocket deleted: {pocket.name}",
                correlation_id=correlation_id,
            )
            return OperationResult.ok()
        except Exception as e:
            return await self._handle_failure(e, "delete_pocket", identity, correlation_id)

    async def share_pocket(
        self,
        identity: Optional[Identity],
        pocket_id: str,
        email: str,
    ) -> OperationResult[PocketMemberInfo]:
        """Grant another user (found by email) access to a pocket."""
        correlation_id = create_correlation_id()
        try:
            identity = require_identity(identity)
            email = (email or "").strip()
            if not email:
                raise InvalidInputError("Email is required")

            pocket = await self._gate.get_owned_pocket(identity, pocket_id)
            user = await self._users.find_user_by_email(email)
            if user is None:
                raise NotFoundError(f"No user found with email {email}")
            if user.user_id == pocket.owner_user_id:
                raise InvalidInputError("You already own this pocket")

            await self._pockets.add_member(pocket_id, user.user_id)
            self._cache.invalidate(*POCKET_VIEWS)
            await self._audit_logger.log_pocket_changed(
                event_type=AuditEventType.POCKET_SHARED,
                user_id=identity.user_id,
                pocket_id=pocket_id,
                description=f"Pocket shared with {user.email}",
                correlation_id=correlation_id,
                details={"member_user_id": user.user_id},
            )
            return OperationResult.ok(PocketMemberInfo(
                user_id=user.user_id,
                name=user.name,
                email=user.email or email,
            ))
        except Exception as e:
            return await self._handle_failure(e, "share_pocket", identity, correlation_id)

    async def list_members(
        self,
        identity: Optional[Identity],
        pocket_id: str,
    ) -> OperationResult[list[PocketMemberInfo]]:
        """Non-owner members; visible to the owner and the members."""
        correlation_id = create_correlation_id()
        try:
            identity = require_identity(identity)
            await self._gate.get_accessible_pocket(identity, pocket_id)
            return OperationResult.ok(await self._pockets.list_members(pocket_id))
        except Exception as e:
            return await self._handle_failure(e, "list_members", identity, correlation_id)

    async def remove_member(
        self,
        identity: Optional[Identity],
        pocket_id: str,
        member_user_id: str,
    ) -> OperationResult[None]:
        correlation_id = create_correlation_id()
        try:
            identity = require_identity(identity)
            await self._gate.get_owned_pocket(identity, pocket_id)

            if not await self._pockets.remove_member(pocket_id, member_user_id):
                raise NotFoundError("Member not found")
            self._cache.invalidate(*POCKET_VIEWS)
            await self._audit_logger.log_pocket_changed(
                event_type=AuditEventType.MEMBER_REMOVED,
                user_id=identity.user_id,
                pocket_id=pocket_id,
                description="Member removed from pocket",
                correlation_id=correlation_id,
                details={"member_user_id": member_user_id},
            )
            return OperationResult.ok()
        except Exception as e:
            return await self._handle_failure(e, "remove_member", identity, correlation_id)


class ReportFlow(_Flow):
    """
    Read views built from the full invoice table.

    Results are cached per (user, parameters) and dropped whenever an
    invoice or pocket write invalidates the view.
    """

    def __init__(
        self,
        invoice_storage: InvoiceStorageInterface,
        pocket_storage: PocketStorageInterface,
        user_storage: Optional[UserStorageInterface] = None,
        gate: Optional[AccessGate] = None,
        cache: Optional[ViewCache] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        super().__init__(audit_logger=audit_logger, cache=cache)
        self._invoices = invoice_storage
        self._users = user_storage
        self._gate = gate or AccessGate(pocket_storage)
        self._settings = settings or get_settings().app

    async def _check_pocket(self, identity: Identity, pocket_id: Optional[str]) -> None:
        if pocket_id:
            await self._gate.get_accessible_pocket(identity, pocket_id)

    async def dashboard(
        self,
        identity: Optional[Identity],
        pocket_id: Optional[str] = None,
        today: Optional[date] = None,
    ) -> OperationResult[DashboardSummary]:
        """This month's total, the latest invoices and the pocket list."""
        correlation_id = create_correlation_id()
        try:
            identity = require_identity(identity)
            await self._check_pocket(identity, pocket_id)
            date_from, date_to, label = month_range(today=today)
            currency = await preferred_currency(identity, self._users, self._settings)

            cache_key = (identity.user_id, pocket_id, label, currency)
            cached = self._cache.get(View.HOME, cache_key)
            if cached is not None:
                return OperationResult.ok(cached)

            month_filter = await self._gate.visibility_filter(
                identity,
                pocket_id=pocket_id or None,
                date_from=date_from,
                date_to=date_to,
            )
            recent_filter = month_filter.model_copy(
                update={"date_from": None, "date_to": None}
            )
            total = await self._invoices.total_spend(month_filter)
            summary = DashboardSummary(
                month=label,
                currency=currency,
                total_month_spend=total,
                total_month_spend_display=format_amount(total, currency),
                recent_invoices=await self._invoices.list_invoices(
                    recent_filter, limit=RECENT_INVOICES_LIMIT
                ),
                pockets=await self._gate.accessible_pockets(identity),
            )
            self._cache.set(View.HOME, cache_key, summary)
            return OperationResult.ok(summary)
        except Exception as e:
            return await self._handle_failure(e, "dashboard", identity, correlation_id)

    async def analysis(
        self,
        identity: Optional[Identity],
        pocket_id: Optional[str] = None,
        month: Optional[str] = None,
    ) -> OperationResult[AnalysisReport]:
        """Daily totals, category breakdown and top items for one month."""
        correlation_id = create_correlation_id()
        try:
            identity = require_identity(identity)
            await self._check_pocket(identity, pocket_id)
            date_from, date_to, label = month_range(month)

            cache_key = (identity.user_id, pocket_id, label)
            cached = self._cache.get(View.ANALYSIS, cache_key)
            if cached is not None:
                return OperationResult.ok(cached)

            invoice_filter = await self._gate.visibility_filter(
                identity,
                pocket_id=pocket_id or None,
                date_from=date_from,
                date_to=date_to,
            )
            report = AnalysisReport(
                month=label,
                daily_totals=await self._invoices.daily_totals(invoice_filter),
                category_totals=await self._invoices.category_totals(invoice_filter),
                top_items=await self._invoices.top_items(invoice_filter, limit=TOP_ITEMS_LIMIT),
                pockets=await self._gate.accessible_pockets(identity),
            )
            self._cache.set(View.ANALYSIS, cache_key, report)
            return OperationResult.ok(report)
        except Exception as e:
            return await self._handle_failure(e, "analysis", identity, correlation_id)


class SettingsFlow(_Flow):
    """Per-user preferences."""

    def __init__(
        self,
        user_storage: UserStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        super().__init__(audit_logger=audit_logger)
        self._users = user_storage
        self._settings = settings or get_settings().app

    async def get_user_settings(
        self,
        identity: Optional[Identity],
    ) -> OperationResult[UserSettings]:
        correlation_id = create_correlation_id()
        try:
            identity = require_identity(identity)
            currency = await preferred_currency(identity, self._users, self._settings)
            return OperationResult.ok(UserSettings(currency=currency))
        except Exception as e:
            return await self._handle_failure(e, "get_user_settings", identity, correlation_id)

    async def update_currency(
        self,
        identity: Optional[Identity],
        currency: str,
    ) -> OperationResult[UserSettings]:
        correlation_id = create_correlation_id()
        try:
            identity = require_identity(identity)
            code = (currency or "").strip().upper()
            if not is_supported(code):
                raise InvalidInputError("Invalid currency code")

            if not await self._users.set_currency(identity.user_id, code):
                raise NotFoundError("User not found")
            await self._audit_logger.log_currency_updated(
                user_id=identity.user_id,
                currency=code,
                correlation_id=correlation_id,
            )
            return OperationResult.ok(UserSettings(currency=code))
        except Exception as e:
            return await self._handle_failure(e, "update_currency", identity, correlation_id)


class AppComponents(NamedTuple):
    database: Database
    invoice_flow: InvoiceFlow
    pocket_flow: PocketFlow
    report_flow: ReportFlow
    settings_flow: SettingsFlow


def create_app_components(
    database: Optional[Database] = None,
    agent: Optional[InvoiceExtractionAgent] = None,
    init_db: bool = True,
    persist_audit: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        database: Database to use; built from settings if None
        agent: Extraction agent; built from Gemini settings if None
        init_db: Create missing tables
        persist_audit: Write audit events to the database as well
            as the local log

    All flows share one ViewCache so that writes in one flow
    invalidate the views served by another.
    """
    if database is None:
        database = Database.from_settings()
        database.connect()
    if init_db:
        database.init_db()

    invoice_storage = SqlInvoiceStorage(database)
    pocket_storage = SqlPocketStorage(database)
    user_storage = SqlUserStorage(database)
    audit_logger = AuditLogger(SqlAuditStorage(database) if persist_audit else None)

    cache = ViewCache()
    gate = AccessGate(pocket_storage)

    return AppComponents(
        database=database,
        invoice_flow=InvoiceFlow(
            invoice_storage=invoice_storage,
            pocket_storage=pocket_storage,
            agent=agent,
            gate=gate,
            cache=cache,
            audit_logger=audit_logger,
        ),
        pocket_flow=PocketFlow(
            pocket_storage=pocket_storage,
            user_storage=user_storage,
            gate=gate,
            cache=cache,
            audit_logger=audit_logger,
        ),
        report_flow=ReportFlow(
            invoice_storage=invoice_storage,
            pocket_storage=pocket_storage,
            user_storage=user_storage,
            gate=gate,
            cache=cache,
            audit_logger=audit_logger,
        ),
        settings_flow=SettingsFlow(
            user_storage=user_storage,
            audit_logger=audit_logger,
        ),
    )
