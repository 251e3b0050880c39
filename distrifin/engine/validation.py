"""Collection entry validation and record construction."""

import logging
import math
import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, Optional, Union
from uuid import uuid4

from distrifin.engine.models import (
    Collection,
    CollectionStatus,
    Customer,
    PaymentType,
)

logger = logging.getLogger(__name__)

# Payment types that settle later and start out as PENDING
DEFERRED_PAYMENT_TYPES = (PaymentType.CARD, PaymentType.CHEQUE)

# Optional currency code or symbol on either side of the number, e.g. "LKR 5,000.00"
_AMOUNT_PATTERN = re.compile(
    r"^\s*(?:[A-Za-z]{2,3}\.?|[$€£₹])?\s*"
    r"([-+]?(?:\d[\d,]*(?:\.\d*)?|\.\d+))"
    r"(?:\s+[A-Za-z]{3})?\s*$"
)


class CollectionValidationError(ValueError):
    """Raised when operator input cannot become a collection."""


@dataclass
class CollectionDraft:
    """Raw operator input for a new collection, before validation."""
    customer_id: str = ""
    payment_type: PaymentType = PaymentType.CASH
    amount: Union[str, int, float, Decimal, None] = ""
    cheque_number: str = ""
    bank: str = ""
    branch: str = ""
    realize_date: Union[date, str, None] = None
    cheque_image_base64: Optional[str] = None


def parse_amount(value) -> Decimal:
    """
    Parse a money amount typed by an operator or read from a file.

    Thousands separators and one currency code or symbol before or after the
    number are accepted, so "LKR 5,000.00" and "5000" both parse. Anything
    else in the text ("5,OOO", "1e3", "50k") is rejected.

    Raises:
        ValueError: If the text is not a plain finite amount.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            raise ValueError("Amount is not a number")
        return Decimal(str(value))

    found = _AMOUNT_PATTERN.match(str(value))
    if not found:
        raise ValueError(f"Could not parse amount: {value!r}")

    try:
        return Decimal(found.group(1).replace(",", ""))
    except InvalidOperation as e:
        raise ValueError(f"Could not parse amount: {value!r}") from e


def parse_date(value) -> date:
    """Parse an ISO date (a datetime's time part is dropped)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


def initial_status(payment_type: PaymentType) -> CollectionStatus:
    """Card and cheque payments wait for settlement; everything else is received."""
    if payment_type in DEFERRED_PAYMENT_TYPES:
        return CollectionStatus.PENDING
    return CollectionStatus.RECEIVED


class CollectionValidator:
    """
    Validate collection drafts against customer master data.

    The credit period check only looks forward: a cheque dated in the past or
    today is accepted however old it is.
    """

    def __init__(self, customers: Iterable[Customer]):
        self._customers: Dict[str, Customer] = {c.customer_id: c for c in customers}

    def validate(self, draft: CollectionDraft, today: Optional[date] = None) -> None:
        """
        Check a draft and raise with the first problem found.

        Args:
            draft: The operator input.
            today: Reference date for the credit period check. Defaults to today.

        Raises:
            CollectionValidationError: With an operator-facing message.
        """
        self._check(draft, today or date.today())

    def build(
        self,
        draft: CollectionDraft,
        today: Optional[date] = None,
        collection_id: Optional[str] = None,
    ) -> Collection:
        """
        Validate a draft and turn it into a collection ready for persistence.

        Args:
            draft: The operator input.
            today: Reference date; also stamped as the collection date.
            collection_id: Identifier to use instead of a generated one.

        Returns:
            A new Collection with its initial status assigned.
        """
        today = today or date.today()
        amount, realize_date = self._check(draft, today)
        is_cheque = draft.payment_type == PaymentType.CHEQUE

        collection = Collection(
            collection_id=collection_id or f"CL-{uuid4().hex[:12].upper()}",
            customer_id=draft.customer_id,
            payment_type=draft.payment_type,
            amount=amount,
            status=initial_status(draft.payment_type),
            collection_date=today,
            cheque_number=draft.cheque_number.strip() if is_cheque else None,
            bank=draft.bank.strip() if is_cheque else None,
            branch=(draft.branch.strip() or None) if is_cheque else None,
            realize_date=realize_date if is_cheque else None,
            cheque_image_base64=draft.cheque_image_base64 or None,
        )
        logger.info(
            "Built collection %s: %s %s for %s",
            collection.collection_id, collection.payment_type.value,
            collection.amount, collection.customer_id,
        )
        return collection

    def _check(self, draft: CollectionDraft, today: date):
        if not draft.customer_id or draft.amount in (None, ""):
            raise CollectionValidationError("Customer and Amount are required.")

        try:
            amount = parse_amount(draft.amount)
        except ValueError as e:
            raise CollectionValidationError("Amount must be a positive number.") from e
        if not amount.is_finite() or amount <= 0:
            raise CollectionValidationError("Amount must be a positive number.")

        if draft.payment_type != PaymentType.CHEQUE:
            return amount, None

        if not draft.cheque_number.strip() or not draft.bank.strip() or not draft.realize_date:
            raise CollectionValidationError("Cheque details incomplete.")

        try:
            realize_date = parse_date(draft.realize_date)
        except ValueError as e:
            raise CollectionValidationError(
                f"Invalid realize date: {draft.realize_date!r}"
            ) from e

        customer = self._customers.get(draft.customer_id)
        if customer is not None:
            self._check_credit_period(customer, realize_date, today)

        return amount, realize_date

    def _check_credit_period(self, customer: Customer, realize_date: date, today: date) -> None:
        period = customer.credit_period_days or 0
        diff_days = math.ceil(abs((realize_date - today).days))

        if realize_date > today and diff_days > period:
            raise CollectionValidationError(
                f"Cheque date exceeds allowed credit period of {period} days."
            )
