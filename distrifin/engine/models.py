"""Data models for collections, master data and reconciliation."""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional


class PaymentType(Enum):
    """How the money was handed over."""
    CASH = "CASH"
    CARD = "CARD"
    CHEQUE = "CHEQUE"
    BANK_TRANSFER = "BANK_TRANSFER"


class CollectionStatus(Enum):
    """Lifecycle status of a collection."""
    RECEIVED = "RECEIVED"
    PENDING = "PENDING"      # Card settlement or cheque clearing outstanding
    REALIZED = "REALIZED"    # Cheque cleared
    RETURNED = "RETURNED"    # Cheque bounced

    @property
    def is_terminal(self) -> bool:
        return self is not CollectionStatus.PENDING


class CustomerStatus(Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class RouteStatus(Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


def _to_date(value) -> Optional[date]:
    """Coerce a stored date value back into a date."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _to_decimal(value, default: str = "0") -> Decimal:
    if value is None or value == "":
        return Decimal(default)
    return Decimal(str(value))


def _serialize(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


@dataclass
class Customer:
    """A shop or business the sales reps collect from."""
    customer_id: str
    business_name: str
    customer_name: str = ""
    phone_number: str = ""
    whatsapp_number: str = ""
    address: str = ""
    location: str = ""  # Free text "lat, lng"
    credit_limit: Optional[Decimal] = None
    credit_period_days: Optional[int] = None
    route_id: Optional[str] = None
    status: CustomerStatus = CustomerStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        return {k: _serialize(v) for k, v in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Customer":
        period = data.get("credit_period_days")
        limit = data.get("credit_limit")
        return cls(
            customer_id=data["customer_id"],
            business_name=data.get("business_name", ""),
            customer_name=data.get("customer_name", ""),
            phone_number=data.get("phone_number", ""),
            whatsapp_number=data.get("whatsapp_number", ""),
            address=data.get("address", ""),
            location=data.get("location", ""),
            credit_limit=_to_decimal(limit) if limit not in (None, "") else None,
            credit_period_days=int(period) if period not in (None, "") else None,
            route_id=data.get("route_id") or None,
            status=CustomerStatus(data.get("status", CustomerStatus.ACTIVE.value)),
        )


@dataclass
class Route:
    """A delivery/collection route customers are assigned to."""
    route_id: str
    route_name: str
    status: RouteStatus = RouteStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        return {k: _serialize(v) for k, v in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Route":
        return cls(
            route_id=data["route_id"],
            route_name=data.get("route_name", ""),
            status=RouteStatus(data.get("status", RouteStatus.ACTIVE.value)),
        )


@dataclass
class Collection:
    """A single payment received from a customer."""
    collection_id: str
    customer_id: str
    payment_type: PaymentType
    amount: Decimal
    status: CollectionStatus
    collection_date: date
    cheque_number: Optional[str] = None
    bank: Optional[str] = None
    branch: Optional[str] = None
    realize_date: Optional[date] = None  # Expected clearing date
    cheque_image_base64: Optional[str] = None

    @property
    def is_pending_cheque(self) -> bool:
        return (
            self.payment_type == PaymentType.CHEQUE
            and self.status == CollectionStatus.PENDING
        )

    def to_dict(self) -> Dict[str, Any]:
        return {k: _serialize(v) for k, v in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Collection":
        return cls(
            collection_id=data["collection_id"],
            customer_id=data.get("customer_id", ""),
            payment_type=PaymentType(data["payment_type"]),
            amount=_to_decimal(data.get("amount")),
            status=CollectionStatus(data["status"]),
            collection_date=_to_date(data.get("collection_date")),
            cheque_number=data.get("cheque_number"),
            bank=data.get("bank"),
            branch=data.get("branch"),
            realize_date=_to_date(data.get("realize_date")),
            cheque_image_base64=data.get("cheque_image_base64"),
        )

    def __repr__(self) -> str:
        return (
            f"Collection(id={self.collection_id!r}, customer={self.customer_id!r}, "
            f"type={self.payment_type.value}, amount={self.amount}, "
            f"status={self.status.value})"
        )


@dataclass
class GlobalSettings:
    """Deployment-wide configuration record."""
    default_credit_limit: Decimal = Decimal("50000")
    default_credit_period: int = 30
    enable_cheque_camera: bool = True
    country: str = "Sri Lanka"
    currency_code: str = "LKR"

    def to_dict(self) -> Dict[str, Any]:
        return {k: _serialize(v) for k, v in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GlobalSettings":
        defaults = cls()
        return cls(
            default_credit_limit=_to_decimal(
                data.get("default_credit_limit"), str(defaults.default_credit_limit)
            ),
            default_credit_period=int(
                data.get("default_credit_period", defaults.default_credit_period)
            ),
            enable_cheque_camera=bool(
                data.get("enable_cheque_camera", defaults.enable_cheque_camera)
            ),
            country=data.get("country") or defaults.country,
            currency_code=data.get("currency_code") or defaults.currency_code,
        )


@dataclass
class StatementItem:
    """A single line parsed from an uploaded bank statement. Never persisted."""
    id: str
    date: datetime
    description: str = ""
    reference: Optional[str] = None
    debit: Decimal = Decimal("0")
    credit: Decimal = Decimal("0")
    cheque_number: Optional[str] = None
    bank: Optional[str] = None
    branch: Optional[str] = None
    raw_data: dict = field(default_factory=dict)

    @property
    def is_deposit(self) -> bool:
        return self.credit > 0

    def __repr__(self) -> str:
        return (
            f"StatementItem(id={self.id!r}, date={self.date.strftime('%Y-%m-%d')}, "
            f"credit={self.credit}, cheque={self.cheque_number!r}, "
            f"desc={self.description[:30]!r})"
        )


@dataclass
class ChequeMatch:
    """A pending cheque paired with the statement line that cleared it."""
    collection: Collection
    item: StatementItem
    match_reason: str = ""


@dataclass
class ReconciliationResult:
    """Outcome of one reconciliation run."""
    matches: List[ChequeMatch] = field(default_factory=list)
    bank_direct: List[StatementItem] = field(default_factory=list)
    outstanding: List[Collection] = field(default_factory=list)
    ignored_count: int = 0

    @property
    def matched_amount(self) -> Decimal:
        return sum((m.item.credit for m in self.matches), Decimal("0"))

    @property
    def bank_direct_amount(self) -> Decimal:
        return sum((item.credit for item in self.bank_direct), Decimal("0"))

    @property
    def match_rate(self) -> float:
        """Share of pending cheques that cleared, as a percentage."""
        total = len(self.matches) + len(self.outstanding)
        if total == 0:
            return 0.0
        return (len(self.matches) / total) * 100


@dataclass
class AuditLog:
    """Record of an operator action."""
    log_id: str
    timestamp: datetime
    action: str
    details: str = ""
    user_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: _serialize(v) for k, v in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuditLog":
        return cls(
            log_id=data["log_id"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            action=data.get("action", ""),
            details=data.get("details", ""),
            user_name=data.get("user_name"),
        )
