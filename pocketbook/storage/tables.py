"""
Database Tables

SQLAlchemy ORM mapping of the relational store. These rows never
leave the storage package; sql_storage converts them to the pydantic
models in pocketbook.models.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Amount(TypeDecorator):
    """
    Exact decimal amount.

    Unbounded NUMERIC where the backend has one. SQLite has no exact
    decimal type, so there the Decimal is kept in its text form.
    """

    impl = Numeric
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(64))
        return dialect.type_descriptor(Numeric(asdecimal=True))

    def process_bind_param(self, value, dialect):
        if value is None or dialect.name != "sqlite":
            return value
        return str(Decimal(str(value)))

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, Decimal):
            return value
        return Decimal(str(value))


def _new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    pass


class UserRow(Base):
    """Written by the identity provider; the pipeline only reads it."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), default="")
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True)
    currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)


class PocketRow(Base):
    __tablename__ = "pockets"
    __table_args__ = (
        UniqueConstraint("owner_user_id", "name", name="uq_pockets_owner_name"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(100))
    owner_user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), index=True)

    members: Mapped[list["PocketMemberRow"]] = relationship(
        back_populates="pocket",
        cascade="all, delete-orphan",
    )


class PocketMemberRow(Base):
    __tablename__ = "pocket_members"
    __table_args__ = (
        UniqueConstraint("pocket_id", "user_id", name="uq_pocket_members_pocket_user"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    pocket_id: Mapped[str] = mapped_column(
        ForeignKey("pockets.id", ondelete="CASCADE"), index=True
    )
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    pocket: Mapped[PocketRow] = relationship(back_populates="members")
    user: Mapped[UserRow] = relationship()


class InvoiceRow(Base):
    __tablename__ = "invoices"
    __table_args__ = (
        CheckConstraint(
            "CAST(total_amount AS NUMERIC) >= 0", name="ck_invoices_total_non_negative"
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    creator_user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), index=True)
    summary: Mapped[str] = mapped_column(Text)
    date: Mapped[date] = mapped_column(Date, index=True)
    total_amount: Mapped[Decimal] = mapped_column(Amount())
    pocket_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("pockets.id", ondelete="SET NULL"), nullable=True, index=True
    )
    raw_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    items: Mapped[list["InvoiceItemRow"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItemRow.position",
    )
    pocket: Mapped[Optional[PocketRow]] = relationship()


class InvoiceItemRow(Base):
    __tablename__ = "invoice_items"
    __table_args__ = (
        CheckConstraint(
            "CAST(quantity AS NUMERIC) >= 0", name="ck_items_quantity_non_negative"
        ),
        CheckConstraint(
            "CAST(unit_price AS NUMERIC) >= 0", name="ck_items_unit_price_non_negative"
        ),
        CheckConstraint(
            "CAST(total_price AS NUMERIC) >= 0", name="ck_items_total_price_non_negative"
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    invoice_id: Mapped[str] = mapped_column(
        ForeignKey("invoices.id", ondelete="CASCADE"), index=True
    )
    # Order in which the model listed the items
    position: Mapped[int] = mapped_column(default=0)
    name: Mapped[str] = mapped_column(String(300))
    quantity: Mapped[Decimal] = mapped_column(Amount())
    unit_price: Mapped[Decimal] = mapped_column(Amount())
    total_price: Mapped[Decimal] = mapped_column(Amount())
    category: Mapped[str] = mapped_column(String(50), index=True)

    invoice: Mapped[InvoiceRow] = relationship(back_populates="items")


class AuditEventRow(Base):
    """Append-only audit trail."""

    __tablename__ = "audit_events"

    event_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, index=True)
    event_type: Mapped[str] = mapped_column(String(50), index=True)
    severity: Mapped[str] = mapped_column(String(20))
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    entity_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    entity_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    correlation_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    description: Mapped[str] = mapped_column(String(500))
    details: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    error_code: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_user_action: Mapped[bool] = mapped_column(Boolean, default=False)
