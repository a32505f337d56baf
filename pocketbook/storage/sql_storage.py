"""
SQL Storage Implementation

SQLAlchemy implementation of the storage interfaces. Works on SQLite
(development, tests) and PostgreSQL.

Every public method opens its own session_scope(), so each call is
one transaction. save_invoice is the only method that writes more
than one row.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import and_, delete, desc, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import selectinload

from pocketbook.errors import DuplicateError, NotFoundError, StorageError
from pocketbook.models.audit import AuditEvent, AuditEventType, AuditSeverity
from pocketbook.models.invoice import (
    Identity,
    InvoiceDraft,
    InvoiceItemRecord,
    InvoiceRecord,
    LabeledAmount,
    PocketMemberInfo,
    PocketRecord,
)
from pocketbook.storage.database import Database
from pocketbook.storage.interface import (
    AuditStorageInterface,
    InvoiceFilter,
    InvoiceStorageInterface,
    PocketStorageInterface,
    UserStorageInterface,
)
from pocketbook.storage.tables import (
    AuditEventRow,
    InvoiceItemRow,
    InvoiceRow,
    PocketMemberRow,
    PocketRow,
    UserRow,
)


def _decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _invoice_to_record(row: InvoiceRow) -> InvoiceRecord:
    """Convert an invoice row (items loaded) to an InvoiceRecord."""
    return InvoiceRecord(
        id=row.id,
        creator_user_id=row.creator_user_id,
        summary=row.summary,
        date=row.date,
        total_amount=_decimal(row.total_amount),
        pocket_id=row.pocket_id,
        pocket_name=row.pocket.name if row.pocket is not None else None,
        raw_text=row.raw_text,
        created_at=row.created_at,
        items=[
            InvoiceItemRecord(
                id=item.id,
                invoice_id=item.invoice_id,
                name=item.name,
                quantity=_decimal(item.quantity),
                unit_price=_decimal(item.unit_price),
                total_price=_decimal(item.total_price),
                category=item.category,
            )
            for item in row.items
        ],
    )


def _pocket_to_record(row: PocketRow, viewer_id: Optional[str] = None) -> PocketRecord:
    return PocketRecord(
        id=row.id,
        name=row.name,
        owner_user_id=row.owner_user_id,
        is_owner=viewer_id is None or row.owner_user_id == viewer_id,
    )


def _user_to_identity(row: UserRow) -> Identity:
    return Identity(
        user_id=row.id,
        name=row.name,
        email=row.email,
        currency=row.currency,
    )


def _filter_conditions(invoice_filter: InvoiceFilter) -> list:
    """Translate an InvoiceFilter into WHERE conditions on InvoiceRow."""
    conditions = []

    if invoice_filter.visible_to_user_id is not None:
        visibility = InvoiceRow.creator_user_id == invoice_filter.visible_to_user_id
        if invoice_filter.visible_pocket_ids:
            visibility = or_(
                visibility,
                InvoiceRow.pocket_id.in_(invoice_filter.visible_pocket_ids),
            )
        conditions.append(visibility)

    if invoice_filter.pocket_id:
        conditions.append(InvoiceRow.pocket_id == invoice_filter.pocket_id)
    if invoice_filter.date_from:
        conditions.append(InvoiceRow.date >= invoice_filter.date_from)
    if invoice_filter.date_to:
        conditions.append(InvoiceRow.date <= invoice_filter.date_to)
    if invoice_filter.query:
        conditions.append(InvoiceRow.summary.ilike(f"%{invoice_filter.query}%"))

    return conditions


class SqlInvoiceStorage(InvoiceStorageInterface):
    """
    Invoices and their line items.

    Items are written in the order the model listed them and read
    back in that order.
    """

    def __init__(self, database: Database):
        self._db = database

    async def save_invoice(
        self,
        draft: InvoiceDraft,
        pocket_id: Optional[str],
        creator_user_id: str,
        raw_text: Optional[str],
    ) -> InvoiceRecord:
        try:
            with self._db.session_scope() as session:
                invoice = InvoiceRow(
                    creator_user_id=creator_user_id,
                    summary=draft.summary,
                    date=draft.date,
                    total_amount=draft.total_amount,
                    pocket_id=pocket_id,
                    raw_text=raw_text,
                )
                session.add(invoice)
                session.flush()

                session.add_all([
                    InvoiceItemRow(
                        invoice_id=invoice.id,
                        position=position,
                        name=item.name,
                        quantity=item.quantity,
                        unit_price=item.unit_price,
                        total_price=item.total_price,
                        category=item.category.value,
                    )
                    for position, item in enumerate(draft.items)
                ])
                session.flush()

                saved = session.scalar(
                    select(InvoiceRow)
                    .options(selectinload(InvoiceRow.items), selectinload(InvoiceRow.pocket))
                    .where(InvoiceRow.id == invoice.id)
                    .execution_options(populate_existing=True)
                )
                if saved is None:
                    raise StorageError("Failed to retrieve saved invoice")

                return _invoice_to_record(saved)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to save invoice: {e}") from e

    async def get_invoice(self, invoice_id: str) -> Optional[InvoiceRecord]:
        with self._db.session_scope() as session:
            row = session.scalar(
                select(InvoiceRow)
                .options(selectinload(InvoiceRow.items), selectinload(InvoiceRow.pocket))
                .where(InvoiceRow.id == invoice_id)
            )
            return _invoice_to_record(row) if row is not None else None

    async def delete_invoice(self, invoice_id: str) -> bool:
        with self._db.session_scope() as session:
            row = session.get(InvoiceRow, invoice_id)
            if row is None:
                return False
            session.delete(row)
            return True

    async def list_invoices(
        self,
        invoice_filter: InvoiceFilter,
        limit: int = 20,
        offset: int = 0,
    ) -> list[InvoiceRecord]:
        with self._db.session_scope() as session:
            rows = session.scalars(
                select(InvoiceRow)
                .options(selectinload(InvoiceRow.items), selectinload(InvoiceRow.pocket))
                .where(*_filter_conditions(invoice_filter))
                .order_by(desc(InvoiceRow.date), desc(InvoiceRow.created_at))
                .limit(limit)
                .offset(offset)
            ).all()
            return [_invoice_to_record(row) for row in rows]

    async def total_spend(self, invoice_filter: InvoiceFilter) -> Decimal:
        with self._db.session_scope() as session:
            amounts = session.scalars(
                select(InvoiceRow.total_amount).where(*_filter_conditions(invoice_filter))
            ).all()
            return sum(amounts, Decimal("0"))

    async def daily_totals(self, invoice_filter: InvoiceFilter) -> list[LabeledAmount]:
        with self._db.session_scope() as session:
            rows = session.execute(
                select(InvoiceRow.date, InvoiceRow.total_amount)
                .where(*_filter_conditions(invoice_filter))
                .order_by(InvoiceRow.date)
            ).all()

        # SUM() over SQLite text columns goes through float
        totals: dict = defaultdict(Decimal)
        for day, amount in rows:
            totals[day] += amount
        return [
            LabeledAmount(name=day.strftime("%d %b"), value=amount)
            for day, amount in totals.items()
        ]

    async def category_totals(self, invoice_filter: InvoiceFilter) -> list[LabeledAmount]:
        return await self._item_totals(InvoiceItemRow.category, invoice_filter)

    async def top_items(
        self,
        invoice_filter: InvoiceFilter,
        limit: int = 10,
    ) -> list[LabeledAmount]:
        return await self._item_totals(InvoiceItemRow.name, invoice_filter, limit)

    async def _item_totals(
        self,
        column,
        invoice_filter: InvoiceFilter,
        limit: Optional[int] = None,
    ) -> list[LabeledAmount]:
        stmt = (
            select(column, InvoiceItemRow.total_price)
            .join(InvoiceRow, InvoiceItemRow.invoice_id == InvoiceRow.id)
            .where(*_filter_conditions(invoice_filter))
        )
        with self._db.session_scope() as session:
            rows = session.execute(stmt).all()

        totals: dict[str, Decimal] = defaultdict(Decimal)
        for label, amount in rows:
            totals[label] += amount
        ranked = sorted(totals.items(), key=lambda entry: (-entry[1], entry[0]))
        if limit is not None:
            ranked = ranked[:limit]
        return [LabeledAmount(name=label, value=amount) for label, amount in ranked]


class SqlPocketStorage(PocketStorageInterface):
    """Pockets and memberships."""

    def __init__(self, database: Database):
        self._db = database

    async def get_pocket(self, pocket_id: str) -> Optional[PocketRecord]:
        with self._db.session_scope() as session:
            row = session.get(PocketRow, pocket_id)
            return _pocket_to_record(row) if row is not None else None

    async def find_pocket_by_name(
        self,
        owner_user_id: str,
        name: str,
    ) -> Optional[PocketRecord]:
        with self._db.session_scope() as session:
            row = session.scalar(
                select(PocketRow).where(
                    PocketRow.owner_user_id == owner_user_id,
                    PocketRow.name == name,
                )
            )
            return _pocket_to_record(row) if row is not None else None

    async def get_or_create_pocket(
        self,
        owner_user_id: str,
        name: str,
    ) -> tuple[PocketRecord, bool]:
        existing = await self.find_pocket_by_name(owner_user_id, name)
        if existing is not None:
            return existing, False

        try:
            return await self.create_pocket(owner_user_id, name), True
        except DuplicateError:
            # A concurrent request created it first
            existing = await self.find_pocket_by_name(owner_user_id, name)
            if existing is None:
                raise StorageError(f"Could not create pocket '{name}'")
            return existing, False

    async def create_pocket(self, owner_user_id: str, name: str) -> PocketRecord:
        try:
            with self._db.session_scope() as session:
                row = PocketRow(name=name, owner_user_id=owner_user_id)
                session.add(row)
                session.flush()
                return _pocket_to_record(row)
        except IntegrityError as e:
            if self._name_taken(owner_user_id, name):
                raise DuplicateError(f"You already have a pocket named '{name}'") from e
            raise StorageError(f"Failed to create pocket: {e}") from e

    def _name_taken(self, owner_user_id: str, name: str) -> bool:
        with self._db.session_scope() as session:
            return session.scalar(
                select(func.count(PocketRow.id)).where(
                    PocketRow.owner_user_id == owner_user_id,
                    PocketRow.name == name,
                )
            ) > 0

    async def rename_pocket(self, pocket_id: str, name: str) -> PocketRecord:
        owner_user_id = None
        try:
            with self._db.session_scope() as session:
                row = session.get(PocketRow, pocket_id)
                if row is None:
                    raise NotFoundError("Pocket not found")
                owner_user_id = row.owner_user_id
                row.name = name
                session.flush()
                return _pocket_to_record(row)
        except IntegrityError as e:
            if owner_user_id and self._name_taken(owner_user_id, name):
                raise DuplicateError(f"You already have a pocket named '{name}'") from e
            raise StorageError(f"Failed to rename pocket: {e}") from e

    async def delete_pocket(self, pocket_id: str) -> bool:
        with self._db.session_scope() as session:
            row = session.get(PocketRow, pocket_id)
            if row is None:
                return False
            session.execute(
                update(InvoiceRow)
                .where(InvoiceRow.pocket_id == pocket_id)
                .values(pocket_id=None)
            )
            session.delete(row)
            return True

    async def list_owned_pockets(self, user_id: str) -> list[PocketRecord]:
        with self._db.session_scope() as session:
            rows = session.scalars(
                select(PocketRow)
                .where(PocketRow.owner_user_id == user_id)
                .order_by(PocketRow.name)
            ).all()
            return [_pocket_to_record(row, user_id) for row in rows]

    async def list_shared_pockets(self, user_id: str) -> list[PocketRecord]:
        with self._db.session_scope() as session:
            rows = session.scalars(
                select(PocketRow)
                .join(PocketMemberRow, PocketMemberRow.pocket_id == PocketRow.id)
                .where(PocketMemberRow.user_id == user_id)
                .order_by(PocketRow.name)
            ).all()
            return [_pocket_to_record(row, user_id) for row in rows]

    async def is_member(self, pocket_id: str, user_id: str) -> bool:
        with self._db.session_scope() as session:
            count = session.scalar(
                select(func.count(PocketMemberRow.id)).where(
                    PocketMemberRow.pocket_id == pocket_id,
                    PocketMemberRow.user_id == user_id,
                )
            )
            return bool(count)

    async def add_member(self, pocket_id: str, user_id: str) -> None:
        if await self.is_member(pocket_id, user_id):
            raise DuplicateError("User is already a member of this pocket")
        try:
            with self._db.session_scope() as session:
                session.add(PocketMemberRow(pocket_id=pocket_id, user_id=user_id))
        except IntegrityError as e:
            if await self.is_member(pocket_id, user_id):
                raise DuplicateError("User is already a member of this pocket") from e
            raise StorageError(f"Failed to share pocket: {e}") from e

    async def remove_member(self, pocket_id: str, user_id: str) -> bool:
        with self._db.session_scope() as session:
            result = session.execute(
                delete(PocketMemberRow).where(
                    and_(
                        PocketMemberRow.pocket_id == pocket_id,
                        PocketMemberRow.user_id == user_id,
                    )
                )
            )
            return result.rowcount > 0

    async def list_members(self, pocket_id: str) -> list[PocketMemberInfo]:
        with self._db.session_scope() as session:
            rows = session.execute(
                select(UserRow)
                .join(PocketMemberRow, PocketMemberRow.user_id == UserRow.id)
                .where(PocketMemberRow.pocket_id == pocket_id)
                .order_by(PocketMemberRow.created_at)
            ).scalars().all()
            return [
                PocketMemberInfo(user_id=row.id, name=row.name, email=row.email)
                for row in rows
            ]


class SqlUserStorage(UserStorageInterface):
    """Users as written by the identity provider."""

    def __init__(self, database: Database):
        self._db = database

    async def get_user(self, user_id: str) -> Optional[Identity]:
        with self._db.session_scope() as session:
            row = session.get(UserRow, user_id)
            return _user_to_identity(row) if row is not None else None

    async def find_user_by_email(self, email: str) -> Optional[Identity]:
        with self._db.session_scope() as session:
            row = session.scalar(
                select(UserRow).where(func.lower(UserRow.email) == email.strip().lower())
            )
            return _user_to_identity(row) if row is not None else None

    async def register_user(self, identity: Identity) -> Identity:
        if not identity.email:
            raise StorageError("Users need an email address")
        try:
            with self._db.session_scope() as session:
                row = session.get(UserRow, identity.user_id)
                if row is None:
                    row = UserRow(id=identity.user_id)
                    session.add(row)
                row.name = identity.name
                row.email = identity.email
                if identity.currency:
                    row.currency = identity.currency
                session.flush()
                return _user_to_identity(row)
        except IntegrityError as e:
            raise DuplicateError(f"Email already registered: {identity.email}") from e

    async def set_currency(self, user_id: str, currency: str) -> bool:
        with self._db.session_scope() as session:
            result = session.execute(
                update(UserRow).where(UserRow.id == user_id).values(currency=currency)
            )
            return result.rowcount > 0


class SqlAuditStorage(AuditStorageInterface):
    """Audit trail in the audit_events table."""

    def __init__(self, database: Database):
        self._db = database

    @staticmethod
    def _event_to_row(event: AuditEvent) -> AuditEventRow:
        return AuditEventRow(
            event_id=str(event.event_id),
            timestamp=event.timestamp,
            event_type=event.event_type.value,
            severity=event.severity.value,
            user_id=event.user_id,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            correlation_id=str(event.correlation_id) if event.correlation_id else None,
            description=event.description,
            details=event.details,
            error_code=event.error_code,
            error_message=event.error_message,
            is_user_action=event.is_user_action,
        )

    @staticmethod
    def _row_to_event(row: AuditEventRow) -> AuditEvent:
        return AuditEvent(
            event_id=UUID(row.event_id),
            timestamp=row.timestamp,
            event_type=AuditEventType(row.event_type),
            severity=AuditSeverity(row.severity),
            user_id=row.user_id,
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            correlation_id=UUID(row.correlation_id) if row.correlation_id else None,
            description=row.description,
            details=row.details or {},
            error_code=row.error_code,
            error_message=row.error_message,
            is_user_action=row.is_user_action,
        )

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            with self._db.session_scope() as session:
                session.add(self._event_to_row(event))
            return True
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to append audit event: {e}") from e

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        with self._db.session_scope() as session:
            rows = session.scalars(
                select(AuditEventRow)
                .where(AuditEventRow.correlation_id == str(correlation_id))
                .order_by(AuditEventRow.timestamp)
            ).all()
            return [self._row_to_event(row) for row in rows]

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        with self._db.session_scope() as session:
            rows = session.scalars(
                select(AuditEventRow)
                .order_by(desc(AuditEventRow.timestamp))
                .limit(limit)
            ).all()
            return [self._row_to_event(row) for row in rows]
