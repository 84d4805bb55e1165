from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


MONEY = db.Numeric(12, 2)
WEIGHT = db.Numeric(10, 3)
PERCENT = db.Numeric(5, 2)


class ShopProfile(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), default="MGM JEWELLERS")
    address = db.Column(db.String(200), default="")
    gst = db.Column(db.String(50), default="")
    mobile = db.Column(db.String(20), default="")


class Settings(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    gold_rate = db.Column(MONEY, nullable=False, default=0)
    gst_rate = db.Column(PERCENT, nullable=False, default=3)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)


class Category(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    seikuli_rate = db.Column(MONEY, nullable=False, default=0)


class Bill(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    customer_name = db.Column(db.String(100), nullable=False)
    bill_date = db.Column(db.DateTime, nullable=False, index=True)  # UTC
    gold_rate = db.Column(MONEY, nullable=False)
    gst_percentage = db.Column(PERCENT, nullable=False)
    subtotal = db.Column(MONEY, nullable=False)
    gst_amount = db.Column(MONEY, nullable=False)
    grand_total = db.Column(MONEY, nullable=False)
    items = db.relationship("BillItem", backref="bill", order_by="BillItem.position",
                            cascade="all, delete-orphan")


class BillItem(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    bill_id = db.Column(db.Integer, db.ForeignKey("bill.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)
    line_id = db.Column(db.String(32), nullable=False)
    # Copies, not references: categories may be renamed or deleted later.
    category_id = db.Column(db.String(36), nullable=False)
    category_name = db.Column(db.String(100), nullable=False)
    seikuli_rate = db.Column(MONEY, nullable=False)
    weight = db.Column(WEIGHT, nullable=False)
    gold_amount = db.Column(MONEY, nullable=False)
    seikuli_amount = db.Column(MONEY, nullable=False)
    total = db.Column(MONEY, nullable=False)
