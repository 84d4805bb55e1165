from decimal import Decimal

import pytest

from mgm_billing import create_app
from mgm_billing.billing import CategoryRate, RateConfig
from mgm_billing.models import db


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "SECRET_KEY": "test",
        "RECEIPT_FOLDER": str(tmp_path / "bills"),
        "TIMEZONE": "Asia/Kolkata",
        "DEFAULT_GST_PERCENTAGE": "3",
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def rate_store(ctx):
    return ctx.extensions["mgm_billing"]["rates"]


@pytest.fixture
def bill_store(ctx):
    return ctx.extensions["mgm_billing"]["bills"]


@pytest.fixture
def seeded(rate_store):
    rate_store.update_rates("6000", "3")
    ring = rate_store.add_category("Ring", "500")
    chain = rate_store.add_category("Chain", "300")
    return {"ring": ring, "chain": chain}


@pytest.fixture
def client(app):
    with app.app_context():
        store = app.extensions["mgm_billing"]["rates"]
        store.update_rates("6000", "3")
        store.add_category("Ring", "500")
        store.add_category("Chain", "300")
    return app.test_client()


@pytest.fixture
def rates():
    return RateConfig(
        gold_rate=Decimal("6000"),
        gst_percentage=Decimal("3"),
        categories=(
            CategoryRate(id="1", name="Ring", seikuli_rate=Decimal("500")),
            CategoryRate(id="2", name="Chain", seikuli_rate=Decimal("300")),
        ),
    )
