"""Database-backed rate configuration and bill storage."""
from __future__ import annotations

import logging
from datetime import date, timezone
from decimal import Decimal
from typing import Callable, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from .billing import (
    MAX_PERCENT, CategoryRate, LineItem, RateConfig, SubmittedBill, D, parse_rate,
)
from .errors import PersistenceError, ValidationError
from .history import day_bounds, to_utc_naive
from .models import Bill, BillItem, Category, Settings, ShopProfile, db

log = logging.getLogger(__name__)

Listener = Callable[[RateConfig], None]


def _commit(what: str) -> None:
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        log.exception("Database write failed: %s", what)
        raise PersistenceError(f"Failed to {what}. Please try again.") from exc


class RateStore:
    """Gold rate, GST percentage, categories and the shop profile.

    Every write made through the store is pushed to subscribed listeners as a
    fresh ``RateConfig`` snapshot.
    """

    def __init__(self, default_gst=3, shop_defaults: Optional[dict] = None):
        self.default_gst = D(default_gst)
        self.shop_defaults = dict(shop_defaults or {})
        self._listeners: List[Listener] = []

    # -- setup -------------------------------------------------------

    def seed(self) -> None:
        if not Settings.query.first():
            db.session.add(Settings(gold_rate=Decimal("0"), gst_rate=self.default_gst))
        if not ShopProfile.query.first():
            db.session.add(ShopProfile(**self.shop_defaults))
        _commit("initialise settings")

    # -- change notification ----------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        if not self._listeners:
            return
        snap = self.snapshot()
        for listener in list(self._listeners):
            listener(snap)

    # -- reads -------------------------------------------------------

    def _settings(self) -> Settings:
        row = Settings.query.first()
        if row is None:
            row = Settings(gold_rate=Decimal("0"), gst_rate=self.default_gst)
            db.session.add(row)
        return row

    def snapshot(self) -> RateConfig:
        try:
            settings = self._settings()
            rows = Category.query.order_by(Category.name).all()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceError("Failed to load rates") from exc
        return RateConfig(
            gold_rate=D(settings.gold_rate),
            gst_percentage=D(settings.gst_rate),
            categories=tuple(
                CategoryRate(id=str(c.id), name=c.name, seikuli_rate=D(c.seikuli_rate))
                for c in rows
            ),
        )

    def shop_profile(self) -> ShopProfile:
        shop = ShopProfile.query.first()
        if shop is None:
            shop = ShopProfile(**self.shop_defaults)
            db.session.add(shop)
            _commit("initialise shop profile")
        return shop

    # -- writes ------------------------------------------------------

    def update_rates(self, gold_rate, gst_percentage) -> RateConfig:
        gold = parse_rate(gold_rate, "Gold rate")
        gst = parse_rate(gst_percentage, "GST percentage", MAX_PERCENT)
        if gold <= 0:
            raise ValidationError("Gold rate must be greater than zero")
        settings = self._settings()
        settings.gold_rate = gold
        settings.gst_rate = gst
        _commit("update rates")
        log.info("Rates updated: gold %s/g, GST %s%%", gold, gst)
        self._notify()
        return self.snapshot()

    def _clean_category(self, name, seikuli_rate, exclude_id=None):
        name = (name or "").strip()
        if not name or not str(seikuli_rate or "").strip():
            raise ValidationError("Please enter both category name and seikuli rate")
        rate = parse_rate(seikuli_rate, "Seikuli rate")
        clash = Category.query.filter(func.lower(Category.name) == name.lower())
        if exclude_id is not None:
            clash = clash.filter(Category.id != exclude_id)
        if clash.first():
            raise ValidationError(f"Category '{name}' already exists")
        return name, rate

    def _get_category(self, category_id) -> Category:
        try:
            row = db.session.get(Category, int(category_id))
        except (TypeError, ValueError):
            row = None
        if row is None:
            raise ValidationError("Category not found")
        return row

    def add_category(self, name, seikuli_rate) -> CategoryRate:
        name, rate = self._clean_category(name, seikuli_rate)
        row = Category(name=name, seikuli_rate=rate)
        db.session.add(row)
        _commit(f"add category {name}")
        log.info("Category added: %s (%s/g)", name, rate)
        self._notify()
        return CategoryRate(id=str(row.id), name=row.name, seikuli_rate=rate)

    def update_category(self, category_id, name, seikuli_rate) -> CategoryRate:
        row = self._get_category(category_id)
        name, rate = self._clean_category(name, seikuli_rate, exclude_id=row.id)
        row.name = name
        row.seikuli_rate = rate
        _commit(f"update category {name}")
        log.info("Category %s updated: %s (%s/g)", row.id, name, rate)
        self._notify()
        return CategoryRate(id=str(row.id), name=name, seikuli_rate=rate)

    def delete_category(self, category_id) -> str:
        row = self._get_category(category_id)
        name = row.name
        db.session.delete(row)
        _commit(f"delete category {name}")
        log.info("Category removed: %s", name)
        self._notify()
        return name

    def update_shop(self, name, address="", gst="", mobile="") -> ShopProfile:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Shop name is required")
        shop = self.shop_profile()
        shop.name = name
        shop.address = (address or "").strip()
        shop.gst = (gst or "").strip()
        shop.mobile = (mobile or "").strip()
        _commit("update shop profile")
        return shop


def _line_from_row(item: BillItem) -> LineItem:
    return LineItem(
        id=item.line_id,
        category_id=item.category_id,
        category_name=item.category_name,
        seikuli_rate=D(item.seikuli_rate),
        weight=D(item.weight),
        gold_amount=D(item.gold_amount),
        seikuli_amount=D(item.seikuli_amount),
    )


def _bill_from_row(row: Bill) -> SubmittedBill:
    return SubmittedBill(
        id=row.id,
        customer_name=row.customer_name,
        bill_date=row.bill_date.replace(tzinfo=timezone.utc),
        gold_rate=D(row.gold_rate),
        gst_percentage=D(row.gst_percentage),
        subtotal=D(row.subtotal),
        gst_amount=D(row.gst_amount),
        grand_total=D(row.grand_total),
        lines=tuple(_line_from_row(item) for item in row.items),
    )


class BillStore:
    """Submitted bills. Header and items are always written together."""

    def save_bill(self, bill: SubmittedBill) -> int:
        row = Bill(
            customer_name=bill.customer_name,
            bill_date=to_utc_naive(bill.bill_date),
            gold_rate=bill.gold_rate,
            gst_percentage=bill.gst_percentage,
            subtotal=bill.subtotal,
            gst_amount=bill.gst_amount,
            grand_total=bill.grand_total,
        )
        row.items = [
            BillItem(
                position=position,
                line_id=line.id,
                category_id=line.category_id,
                category_name=line.category_name,
                seikuli_rate=line.seikuli_rate,
                weight=line.weight,
                gold_amount=line.gold_amount,
                seikuli_amount=line.seikuli_amount,
                total=line.total,
            )
            for position, line in enumerate(bill.lines)
        ]
        db.session.add(row)
        _commit("save bill")
        return row.id

    def list_bills(self, start: date, end: date, tz) -> List[SubmittedBill]:
        if start > end:
            raise ValidationError("Start date must be on or before end date")
        lower, upper = day_bounds(start, end, tz)
        try:
            rows = (
                Bill.query.options(selectinload(Bill.items))
                .filter(Bill.bill_date >= lower, Bill.bill_date <= upper)
                .order_by(Bill.bill_date.desc(), Bill.id.desc())
                .all()
            )
        except SQLAlchemyError as exc:
            db.session.rollback()
            log.exception("Loading bills %s..%s failed", start, end)
            raise PersistenceError("Failed to load bills") from exc
        return [_bill_from_row(row) for row in rows]

    def get_bill(self, bill_id) -> Optional[SubmittedBill]:
        try:
            row = db.session.get(Bill, int(bill_id))
        except (TypeError, ValueError):
            return None
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceError("Failed to load bill details") from exc
        return _bill_from_row(row) if row else None

    def items_for(self, bill_id) -> List[LineItem]:
        try:
            rows = (
                BillItem.query.filter_by(bill_id=int(bill_id))
                .order_by(BillItem.position)
                .all()
            )
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceError("Failed to load bill details") from exc
        return [_line_from_row(item) for item in rows]
