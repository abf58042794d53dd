"""
Business Records for LedgerSafe

These models describe the records a backup carries: customers, bills,
payments, item master data and the item rate history.

DESIGN DECISION: Records are lenient on input and faithful on output.
Field names on the wire are camelCase (the format the billing app writes),
unknown fields are kept as-is, and optional fields that were never set are
left out when the record is written back. A restore must give the user
back exactly what they had, not what this library happens to understand.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional, TypeVar, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


# =============================================================================
# BASE
# =============================================================================

class WireModel(BaseModel):
    """Base for every model that is read from or written to an artifact."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_wire(self) -> dict[str, Any]:
        """Dump using wire (camelCase) names, dropping unset optional fields."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


# =============================================================================
# ENUMS
# =============================================================================

class ItemType(str, Enum):
    """How an item is priced."""
    FIXED = "fixed"
    VARIABLE = "variable"


class DiscountType(str, Enum):
    """How a bill discount is expressed."""
    PERCENTAGE = "percentage"
    AMOUNT = "amount"


# =============================================================================
# RECORDS
# =============================================================================

class Customer(WireModel):
    """A customer of the business. Bills and payments point at it by id."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., description="Display name")
    phone: Optional[str] = None
    created_at: Optional[str] = Field(
        default=None,
        description="ISO-8601 creation timestamp"
    )


class BillLineItem(WireModel):
    """One row of a bill: what was sold, how many, at what rate."""

    id: Optional[str] = None
    item_name: str = Field(default="")
    quantity: float = Field(default=0.0)
    rate: float = Field(default=0.0)
    total: Optional[float] = Field(
        default=None,
        description="Line total; computed from quantity and rate when absent"
    )

    @model_validator(mode="after")
    def fill_total(self) -> "BillLineItem":
        if self.total is None:
            self.total = round(self.quantity * self.rate, 2)
        return self


class Bill(WireModel):
    """
    A bill issued to a customer.

    A bill may be edited after creation; the edited copy keeps the id and
    gets a new createdAt. When several copies of one id meet, the one with
    the latest createdAt wins (see latest_by_created_at).
    """

    id: str = Field(..., min_length=1)
    customer_id: Optional[str] = Field(
        default=None,
        description="Foreign key to Customer.id"
    )
    customer_name: Optional[str] = None
    date: Optional[str] = Field(
        default=None,
        description="Business date of the bill"
    )
    particulars: Optional[str] = None
    items: list[BillLineItem] = Field(default_factory=list)
    discount: Optional[float] = None
    discount_type: Optional[DiscountType] = None
    grand_total: float = Field(...)
    status: Optional[str] = None
    created_at: Optional[str] = None


class Payment(WireModel):
    """A payment received from a customer."""

    id: str = Field(..., min_length=1)
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    amount: float = Field(...)
    date: Optional[str] = None
    payment_method: Optional[str] = None
    created_at: Optional[str] = None


class ItemMaster(WireModel):
    """An item the business sells, with its current rate."""

    id: str = Field(..., min_length=1)
    name: str
    type: ItemType = ItemType.FIXED
    rate: Optional[float] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip()


class ItemRateHistory(WireModel):
    """
    One entry in the append-only log of item rate changes.

    Entries are never edited. A rate change appends a new entry.
    """

    id: str = Field(..., min_length=1)
    item_id: str
    old_rate: Optional[float] = None
    new_rate: Optional[float] = None
    changed_at: str


# =============================================================================
# HELPERS
# =============================================================================

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

Record = TypeVar("Record", WireModel, dict)


def _field(record: Any, attr: str, wire_name: str) -> Any:
    if isinstance(record, dict):
        return record.get(wire_name)
    return getattr(record, attr, None)


def parse_timestamp(value: Union[str, int, float, None]) -> Optional[datetime]:
    """
    Parse an ISO-8601 string or an epoch-milliseconds number.

    Naive timestamps are taken as UTC. Returns None for anything unparseable
    instead of raising, since the callers only use it for ordering.
    """
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def latest_by_created_at(records: Iterable[Record]) -> list[Record]:
    """
    Collapse records sharing an id, keeping the copy with the latest createdAt.

    Works on models and on raw wire dicts alike.
    Order follows the first appearance of each id. On equal (or missing)
    timestamps the earlier copy stays.
    """
    winners: dict[str, Record] = {}
    for record in records:
        record_id = _field(record, "id", "id")
        current = winners.get(record_id)
        if current is None:
            winners[record_id] = record
            continue
        current_ts = parse_timestamp(_field(current, "created_at", "createdAt")) or _EPOCH
        candidate_ts = parse_timestamp(_field(record, "created_at", "createdAt")) or _EPOCH
        if candidate_ts > current_ts:
            winners[record_id] = record
    return list(winners.values())
