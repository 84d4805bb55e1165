"""Bill computation: rate snapshots, line items, totals and submission.

All money is ``Decimal`` rounded half-up to paise. Rates are always passed in
as a ``RateConfig`` snapshot; nothing here reads the database.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, List, Optional, Tuple

from .errors import ValidationError

log = logging.getLogger(__name__)

PAISE = Decimal("0.01")
MILLIGRAM = Decimal("0.001")
ZERO = Decimal("0.00")

# Largest values the Numeric columns can hold.
MAX_WEIGHT = Decimal("9999999.999")
MAX_RATE = Decimal("9999999999.99")
MAX_PERCENT = Decimal("100")


def D(value) -> Decimal:
    """Parse a user or database value into a Decimal, or raise ValidationError."""
    if isinstance(value, Decimal):
        result = value
    else:
        text = str(value if value is not None else "").strip()
        if not text:
            raise ValidationError("A number is required")
        try:
            result = Decimal(text)
        except InvalidOperation:
            raise ValidationError(f"'{text}' is not a number") from None
    if not result.is_finite():
        raise ValidationError(f"'{value}' is not a number")
    return result


def money(value) -> Decimal:
    try:
        return D(value).quantize(PAISE, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError(f"'{value}' is too large") from None


def parse_rate(raw, label, limit=MAX_RATE) -> Decimal:
    """A staff-entered rate or percentage: non-negative, at most ``limit``, to paise."""
    rate = D(raw)
    if rate < 0:
        raise ValidationError(f"{label} cannot be negative")
    if rate > limit:
        raise ValidationError(f"{label} cannot be more than {limit}")
    return rate.quantize(PAISE, rounding=ROUND_HALF_UP)


def parse_weight(raw) -> Decimal:
    weight = D(raw)
    if weight <= 0:
        raise ValidationError("Weight must be greater than zero")
    if weight > MAX_WEIGHT:
        raise ValidationError(f"Weight cannot be more than {MAX_WEIGHT} g")
    grams = weight.quantize(MILLIGRAM)
    if grams != weight:
        raise ValidationError("Weight can have at most 3 decimal places")
    return grams


# ---------------------------------------------------------------------
# Rate configuration
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class CategoryRate:
    id: str
    name: str
    seikuli_rate: Decimal


@dataclass(frozen=True)
class RateConfig:
    gold_rate: Decimal
    gst_percentage: Decimal
    categories: Tuple[CategoryRate, ...] = ()

    def category(self, category_id) -> CategoryRate:
        key = str(category_id or "").strip()
        for cat in self.categories:
            if cat.id == key:
                return cat
        raise ValidationError("Please select a valid category")


# ---------------------------------------------------------------------
# Line items and the draft
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class LineItem:
    id: str
    category_id: str
    category_name: str
    seikuli_rate: Decimal
    weight: Decimal
    gold_amount: Decimal
    seikuli_amount: Decimal

    @property
    def total(self) -> Decimal:
        return self.gold_amount + self.seikuli_amount

    # Compact row form for the session cookie.
    FIELDS = ("id", "category_id", "category_name", "seikuli_rate", "weight",
              "gold_amount", "seikuli_amount")

    def to_row(self) -> List[str]:
        return [str(getattr(self, name)) for name in self.FIELDS]

    @classmethod
    def from_row(cls, row: List[str]) -> "LineItem":
        values = dict(zip(cls.FIELDS, row))
        for name in ("seikuli_rate", "weight", "gold_amount", "seikuli_amount"):
            values[name] = Decimal(values[name])
        return cls(**values)


def build_line(category: CategoryRate, weight: Decimal, rates: RateConfig,
               line_id: Optional[str] = None) -> LineItem:
    return LineItem(
        id=line_id or uuid.uuid4().hex,
        category_id=category.id,
        category_name=category.name,
        seikuli_rate=category.seikuli_rate,
        weight=weight,
        gold_amount=money(weight * rates.gold_rate),
        seikuli_amount=money(weight * category.seikuli_rate),
    )


@dataclass
class DraftBill:
    customer_name: str = ""
    lines: List[LineItem] = field(default_factory=list)

    def find(self, line_id) -> Optional[LineItem]:
        for line in self.lines:
            if line.id == line_id:
                return line
        return None

    def clear(self) -> None:
        self.customer_name = ""
        self.lines = []

    def to_dict(self) -> dict:
        return {
            "customer_name": self.customer_name,
            "lines": [line.to_row() for line in self.lines],
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "DraftBill":
        if not data:
            return cls()
        return cls(
            customer_name=data.get("customer_name", ""),
            lines=[LineItem.from_row(row) for row in data.get("lines", [])],
        )


def add_or_update_line(draft: DraftBill, category_id, weight, rates: RateConfig,
                       editing_line_id: Optional[str] = None) -> DraftBill:
    """Add a line, or replace ``editing_line_id`` in place using today's rates.

    Validation happens before the draft is touched.
    """
    category = rates.category(category_id)
    grams = parse_weight(weight)
    if rates.gold_rate <= 0:
        raise ValidationError("Set today's gold rate in Settings before billing")

    if editing_line_id:
        for index, line in enumerate(draft.lines):
            if line.id == editing_line_id:
                draft.lines[index] = build_line(category, grams, rates, line_id=line.id)
                return draft

    draft.lines.append(build_line(category, grams, rates))
    return draft


def remove_line(draft: DraftBill, line_id) -> DraftBill:
    draft.lines = [line for line in draft.lines if line.id != line_id]
    return draft


# ---------------------------------------------------------------------
# Totals
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class BillTotals:
    subtotal: Decimal
    gst_amount: Decimal
    grand_total: Decimal


def compute_totals(lines: Iterable[LineItem], gst_percentage) -> BillTotals:
    subtotal = sum((line.total for line in lines), ZERO)
    gst_amount = money(subtotal * D(gst_percentage) / Decimal(100))
    return BillTotals(subtotal=subtotal, gst_amount=gst_amount,
                      grand_total=subtotal + gst_amount)


# ---------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class SubmittedBill:
    customer_name: str
    bill_date: datetime
    gold_rate: Decimal
    gst_percentage: Decimal
    subtotal: Decimal
    gst_amount: Decimal
    grand_total: Decimal
    lines: Tuple[LineItem, ...]
    id: Optional[int] = None


def submit(draft: DraftBill, rates: RateConfig, store,
           now: Optional[datetime] = None) -> SubmittedBill:
    """Persist the draft as one bill and clear it.

    ``store.save_bill`` must write the header and its items atomically and
    return the new id. If it raises, the draft is left as it was.
    """
    name = (draft.customer_name or "").strip()
    if not name or not draft.lines:
        raise ValidationError("Please add customer name and at least one item")

    totals = compute_totals(draft.lines, rates.gst_percentage)
    bill = SubmittedBill(
        customer_name=name,
        bill_date=now or datetime.now(timezone.utc),
        gold_rate=rates.gold_rate,
        gst_percentage=rates.gst_percentage,
        subtotal=totals.subtotal,
        gst_amount=totals.gst_amount,
        grand_total=totals.grand_total,
        lines=tuple(draft.lines),
    )
    bill_id = store.save_bill(bill)
    log.info("Saved bill %s for %s: %s", bill_id, name, totals.grand_total)
    draft.clear()
    return replace(bill, id=bill_id)
