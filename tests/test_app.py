from datetime import timedelta
from decimal import Decimal

from sqlalchemy.exc import OperationalError

from mgm_billing import history
from mgm_billing.models import Bill, Category, db


def _draft(client):
    with client.session_transaction() as sess:
        return sess.get("draft", {"customer_name": "", "lines": []})


def _category_id(app, name):
    with app.app_context():
        return str(Category.query.filter_by(name=name).one().id)


def _fill_bill(client, app, name="Lakshmi"):
    client.post("/", data={"action": "customer", "customer_name": name})
    client.post("/", data={"action": "add", "customer_name": name,
                           "category_id": _category_id(app, "Ring"), "weight": "2"})


def test_billing_page_renders(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert b"Gold Rate Today" in resp.data
    assert b"Rs.6,000.00" in resp.data
    assert b"Ring (Rs.500.00/g)" in resp.data


def test_add_item_to_draft(client, app):
    _fill_bill(client, app)
    draft = _draft(client)
    assert draft["customer_name"] == "Lakshmi"
    assert len(draft["lines"]) == 1
    page = client.get("/")
    assert b"Bill Items (1)" in page.data
    assert b"Rs.13,000.00" in page.data


def test_invalid_item_is_flashed(client, app):
    resp = client.post("/", data={"action": "add", "category_id": _category_id(app, "Ring"),
                                  "weight": "-2"}, follow_redirects=True)
    assert b"Weight must be greater than zero" in resp.data
    assert _draft(client)["lines"] == []


def test_edit_recomputes_with_current_gold_rate(client, app):
    _fill_bill(client, app)
    line_id = _draft(client)["lines"][0][0]
    client.post("/settings", data={"action": "rates", "gold_rate": "6500", "gst_rate": "3"})

    client.post("/", data={"action": "edit", "line_id": line_id})
    page = client.get("/")
    assert b"Update Item" in page.data

    client.post("/", data={"action": "add", "category_id": _category_id(app, "Ring"),
                           "weight": "3"})
    lines = _draft(client)["lines"]
    assert len(lines) == 1
    assert lines[0][0] == line_id
    assert Decimal(lines[0][5]) == Decimal("19500.00")


def test_cancel_edit(client, app):
    _fill_bill(client, app)
    line_id = _draft(client)["lines"][0][0]
    client.post("/", data={"action": "edit", "line_id": line_id})
    client.post("/", data={"action": "cancel"})
    assert b"Add to Bill" in client.get("/").data


def test_remove_item(client, app):
    _fill_bill(client, app)
    line_id = _draft(client)["lines"][0][0]
    client.post("/", data={"action": "remove", "line_id": "nope"})
    assert len(_draft(client)["lines"]) == 1
    client.post("/", data={"action": "remove", "line_id": line_id})
    assert _draft(client)["lines"] == []


def test_print_without_customer_is_rejected(client, app):
    client.post("/", data={"action": "add", "category_id": _category_id(app, "Ring"),
                           "weight": "2"})
    resp = client.post("/", data={"action": "print", "customer_name": ""},
                       follow_redirects=True)
    assert b"Please add customer name and at least one item" in resp.data
    assert len(_draft(client)["lines"]) == 1
    with app.app_context():
        assert Bill.query.count() == 0


def test_print_saves_bill_and_clears_draft(client, app):
    _fill_bill(client, app)
    resp = client.post("/", data={"action": "print", "customer_name": "Lakshmi"})
    assert resp.status_code == 302
    assert "printed=" in resp.headers["Location"]

    with app.app_context():
        saved = Bill.query.one()
        assert saved.customer_name == "Lakshmi"
        assert saved.grand_total == Decimal("13390.00")
        assert len(saved.items) == 1
        bill_id = saved.id

    assert _draft(client) == {"customer_name": "", "lines": []}
    page = client.get(resp.headers["Location"])
    assert b"Bill for Lakshmi has been saved" in page.data
    assert b"NET PAYABLE:" in page.data

    pdf = client.get(f"/bills/{bill_id}/receipt")
    assert pdf.status_code == 200
    assert pdf.mimetype == "application/pdf"
    assert pdf.data.startswith(b"%PDF-")


def test_print_failure_keeps_draft(client, app, monkeypatch):
    _fill_bill(client, app)

    def refuse(*args, **kwargs):
        raise OperationalError("INSERT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db.session, "commit", refuse)
    resp = client.post("/", data={"action": "print", "customer_name": "Lakshmi"},
                       follow_redirects=True)
    monkeypatch.undo()

    assert b"Failed to save bill. Please try again." in resp.data
    assert len(_draft(client)["lines"]) == 1
    with app.app_context():
        assert Bill.query.count() == 0


def test_settings_category_lifecycle(client, app):
    resp = client.post("/settings", data={"action": "add_category", "name": "Bangle",
                                          "seikuli_rate": "250"}, follow_redirects=True)
    assert b"Bangle has been added successfully." in resp.data

    resp = client.post("/settings", data={"action": "add_category", "name": "bangle",
                                          "seikuli_rate": "250"}, follow_redirects=True)
    assert b"already exists" in resp.data

    bangle = _category_id(app, "Bangle")
    resp = client.post("/settings", data={"action": "update_category", "category_id": bangle,
                                          "name": "Bangle", "seikuli_rate": "275"},
                       follow_redirects=True)
    assert b"Category has been updated successfully." in resp.data
    assert b"Rs.275.00/g" in resp.data

    resp = client.post("/settings", data={"action": "delete_category", "category_id": bangle},
                       follow_redirects=True)
    assert b"Bangle has been removed successfully." in resp.data


def test_settings_rejects_bad_rates(client):
    resp = client.post("/settings", data={"action": "rates", "gold_rate": "0", "gst_rate": "3"},
                       follow_redirects=True)
    assert b"Gold rate must be greater than zero" in resp.data


def test_settings_shop_profile(client):
    resp = client.post("/settings", data={"action": "update_shop", "name": "MGM GOLD",
                                          "address": "Main Road", "gst": "", "mobile": ""},
                       follow_redirects=True)
    assert b"Shop details have been saved." in resp.data
    assert b'value="MGM GOLD"' in resp.data


def test_history_lists_todays_bills(client, app):
    _fill_bill(client, app)
    client.post("/", data={"action": "print", "customer_name": "Lakshmi"})

    resp = client.get("/history")
    assert resp.status_code == 200
    assert b"1 bill(s) found" in resp.data
    assert b"Lakshmi" in resp.data

    with app.app_context():
        bill_id = Bill.query.one().id
    detail = client.get(f"/history/{bill_id}")
    assert detail.status_code == 200
    assert b"Gold Rate: <b>Rs.6,000.00/gram</b>" in detail.data
    assert b"Ring" in detail.data


def test_history_year_shift_and_errors(client, app):
    _fill_bill(client, app)
    client.post("/", data={"action": "print", "customer_name": "Lakshmi"})
    today = history.today("Asia/Kolkata")

    other_year = client.get(f"/history?start={today}&end={today}&year={today.year - 1}")
    assert b"0 bill(s) found" in other_year.data

    bad = client.get("/history?start=yesterday")
    assert b"is not a date" in bad.data

    reversed_range = client.get(f"/history?start={today}&end={today - timedelta(days=1)}")
    assert b"Start date must be on or before end date" in reversed_range.data

    reset = client.get("/history?reset=1")
    assert reset.status_code == 302


def test_missing_bill_is_404(client):
    assert client.get("/history/999").status_code == 404
    assert client.get("/bills/999/receipt").status_code == 404


def test_history_out_of_range_year_is_flashed(client):
    for year in ("0", "10000"):
        resp = client.get(f"/history?year={year}")
        assert resp.status_code == 200
        assert b"Year must be between 2020 and 2099" in resp.data


def test_oversized_weight_is_flashed(client, app):
    resp = client.post("/", data={"action": "add", "category_id": _category_id(app, "Ring"),
                                  "weight": "1e30"}, follow_redirects=True)
    assert resp.status_code == 200
    assert b"Weight cannot be more than" in resp.data
    assert _draft(client)["lines"] == []


def test_settings_rejects_oversized_rates(client):
    resp = client.post("/settings", data={"action": "rates", "gold_rate": "1e30", "gst_rate": "3"},
                       follow_redirects=True)
    assert resp.status_code == 200
    assert b"Gold rate cannot be more than" in resp.data
