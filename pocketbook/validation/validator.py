"""
Extraction Validation Pipeline

The model's answer is never trusted implicitly. It goes through
three stages before it becomes an InvoiceDraft:

STAGE 1 - PARSE:
- The text must be a JSON object

STAGE 2 - EMPTINESS:
- No items and no (or zero) total means the source was unreadable

STAGE 3 - SCHEMA:
- summary / date / totalAmount / items present with the right JSON types
- amounts are non-negative
- date is a calendar date in YYYY-MM-DD form

Validation never fixes numbers. Cross-field consistency
(quantity * unitPrice vs totalPrice, items vs total) is reported as
warnings by collect_warnings() and left to the user.
"""

import json
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from pocketbook.config import AppSettings, get_settings
from pocketbook.errors import (
    EmptyExtractionError,
    MalformedJsonError,
    SchemaViolationError,
)
from pocketbook.models.invoice import (
    InvoiceDraft,
    InvoiceItemDraft,
    ItemCategory,
)


logger = structlog.get_logger(__name__)

DATE_FORMAT = "%Y-%m-%d"
ITEM_NUMBER_FIELDS = (
    ("quantity", "quantity"),
    ("unitPrice", "unit_price"),
    ("totalPrice", "total_price"),
)


def _is_number(value: Any) -> bool:
    # bool is a subclass of int, but true/false are not amounts
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class ExtractionValidator:
    """
    Validates the raw JSON produced by the extraction agent.

    Usage:
        draft = ExtractionValidator().validate(raw_json)
        warnings = validator.collect_warnings(draft)
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    def _parse(self, raw_json: str) -> dict:
        """Stage 1: the answer must be a JSON object."""
        try:
            # Decimal keeps the digits exactly as the model wrote them
            payload = json.loads(raw_json, parse_float=Decimal)
        except (TypeError, ValueError) as e:
            raise MalformedJsonError(f"Failed to parse JSON response from AI: {e}") from e

        if not isinstance(payload, dict):
            raise MalformedJsonError(
                f"Expected a JSON object, got {type(payload).__name__}"
            )
        return payload

    def _check_not_empty(self, payload: dict) -> None:
        """Stage 2: nothing extracted at all."""
        items = payload.get("items")
        total = payload.get("totalAmount")

        no_items = items is None or (isinstance(items, list) and len(items) == 0)
        no_total = total is None or (_is_number(total) and _to_decimal(total) == 0)

        if no_items and no_total:
            raise EmptyExtractionError(
                "No items and no total amount could be extracted"
            )

    def _validate_item(
        self,
        index: int,
        raw_item: Any,
        problems: list[str],
    ) -> Optional[InvoiceItemDraft]:
        prefix = f"items[{index}]"
        if not isinstance(raw_item, dict):
            problems.append(f"{prefix} must be an object")
            return None

        before = len(problems)
        name = raw_item.get("name")
        if not isinstance(name, str) or not name.strip():
            problems.append(f"{prefix}.name must be a non-empty string")

        amounts: dict[str, Decimal] = {}
        for json_key, field_name in ITEM_NUMBER_FIELDS:
            value = raw_item.get(json_key)
            if not _is_number(value):
                problems.append(f"{prefix}.{json_key} must be a number")
            elif _to_decimal(value) < 0:
                problems.append(f"{prefix}.{json_key} must not be negative")
            else:
                amounts[field_name] = _to_decimal(value)

        raw_category = raw_item.get("category")
        category = ItemCategory.OTHER
        if not isinstance(raw_category, str):
            problems.append(f"{prefix}.category must be a string")
        else:
            matched = ItemCategory.from_label(raw_category)
            if matched is None:
                logger.warning(
                    "unknown_item_category",
                    category=raw_category,
                    fallback=ItemCategory.OTHER.value,
                )
            else:
                category = matched

        if len(problems) > before:
            return None

        return InvoiceItemDraft(name=name, category=category, **amounts)

    def _validate_schema(self, payload: dict) -> InvoiceDraft:
        """Stage 3: types and required fields."""
        problems: list[str] = []

        summary = payload.get("summary")
        if not isinstance(summary, str):
            problems.append("summary must be a string")

        parsed_date: Optional[date] = None
        raw_date = payload.get("date")
        if not isinstance(raw_date, str):
            problems.append("date must be a string")
        else:
            try:
                # Models sometimes append a time part; only the day matters
                parsed_date = datetime.strptime(raw_date.strip()[:10], DATE_FORMAT).date()
            except ValueError:
                problems.append("date must be in YYYY-MM-DD format")

        total = payload.get("totalAmount")
        if not _is_number(total):
            problems.append("totalAmount must be a number")
        elif _to_decimal(total) < 0:
            problems.append("totalAmount must not be negative")

        raw_items = payload.get("items")
        items: list[InvoiceItemDraft] = []
        if not isinstance(raw_items, list):
            problems.append("items must be an array")
        else:
            for index, raw_item in enumerate(raw_items):
                item = self._validate_item(index, raw_item, problems)
                if item is not None:
                    items.append(item)

        if problems:
            raise SchemaViolationError(
                "Invoice data does not match the expected format: "
                + "; ".join(problems),
                fields=problems,
            )

        return InvoiceDraft(
            summary=summary,
            date=parsed_date,
            total_amount=_to_decimal(total),
            items=items,
        )

    def validate(self, raw_json: str) -> InvoiceDraft:
        """
        Run the full validation pipeline.

        Raises:
            MalformedJsonError: Not a JSON object
            EmptyExtractionError: Nothing was extracted
            SchemaViolationError: Wrong or missing fields
        """
        payload = self._parse(raw_json)
        self._check_not_empty(payload)
        try:
            return self._validate_schema(payload)
        except PydanticValidationError as e:
            # Length limits and the like, enforced by the draft models
            fields = [
                ".".join(str(part) for part in error["loc"]) or "invoice"
                for error in e.errors()
            ]
            raise SchemaViolationError(
                f"Invoice data does not match the expected format: {fields}",
                fields=fields,
            ) from e

    def collect_warnings(
        self,
        draft: InvoiceDraft,
        today: Optional[date] = None,
    ) -> list[str]:
        """
        Non-blocking plausibility checks.

        These never reject a draft; they are logged for review.
        """
        warnings = []
        today = today or date.today()

        max_future_date = today + timedelta(days=self._settings.future_date_tolerance_days)
        if draft.date > max_future_date:
            warnings.append(f"Invoice date ({draft.date}) is in the future")

        if draft.items:
            items_total = draft.items_total
            tolerance = draft.total_amount * Decimal(str(self._settings.total_mismatch_tolerance))
            if abs(items_total - draft.total_amount) > tolerance:
                warnings.append(
                    f"Items add up to {items_total} but the total is {draft.total_amount}"
                )

        for item in draft.items:
            expected = item.quantity * item.unit_price
            if abs(expected - item.total_price) > Decimal("0.01"):
                warnings.append(
                    f"{item.name}: {item.quantity} x {item.unit_price} "
                    f"is not {item.total_price}"
                )

        return warnings
