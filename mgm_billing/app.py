import logging
import os

from flask import (
    Blueprint, Flask, abort, current_app, flash, redirect, render_template,
    request, send_file, session, url_for,
)
from flask.logging import default_handler

from . import history
from .billing import DraftBill, add_or_update_line, compute_totals, remove_line, submit
from .config import Config
from .errors import BillingError, PersistenceError, ValidationError
from .models import db
from .receipt import amount, build_pdf, percent, receipt_path, render_text
from .store import BillStore, RateStore

bp = Blueprint("billing", __name__)


def _rate_store() -> RateStore:
    return current_app.extensions["mgm_billing"]["rates"]


def _bill_store() -> BillStore:
    return current_app.extensions["mgm_billing"]["bills"]


def _tz():
    return current_app.config["TIMEZONE"]


def _load_draft() -> DraftBill:
    return DraftBill.from_dict(session.get("draft"))


def _save_draft(draft: DraftBill) -> None:
    session["draft"] = draft.to_dict()


@bp.route("/", methods=["GET", "POST"])
def bill():
    rates = _rate_store().snapshot()
    draft = _load_draft()
    editing = session.get("editing")

    if request.method == "POST":
        action = request.form.get("action", "add")
        if "customer_name" in request.form:
            draft.customer_name = request.form["customer_name"]
        line_id = request.form.get("line_id")
        try:
            if action == "add":
                add_or_update_line(draft, request.form.get("category_id"),
                                   request.form.get("weight"), rates, editing)
                session.pop("editing", None)
                flash("Item has been updated successfully" if editing
                      else "Item has been added to the bill", "success")
            elif action == "edit":
                if draft.find(line_id):
                    session["editing"] = line_id
                    flash("Modify the item details below", "info")
            elif action == "cancel":
                session.pop("editing", None)
            elif action == "remove":
                remove_line(draft, line_id)
                if editing == line_id:
                    session.pop("editing", None)
            elif action == "print":
                saved = submit(draft, rates, _bill_store())
                session.pop("editing", None)
                _save_draft(draft)
                flash(f"Bill for {saved.customer_name} has been saved", "success")
                return redirect(url_for("billing.bill", printed=saved.id))
        except BillingError as exc:
            current_app.logger.warning("Billing action %s rejected: %s", action, exc)
            flash(str(exc), "error")
        _save_draft(draft)
        return redirect(url_for("billing.bill"))

    totals = compute_totals(draft.lines, rates.gst_percentage)
    editing_line = draft.find(editing) if editing else None
    printed = None
    receipt_lines = []
    if request.args.get("printed"):
        printed = _bill_store().get_bill(request.args["printed"])
        if printed:
            receipt_lines = render_text(printed, _rate_store().shop_profile(), _tz())
    return render_template("bill.html", rates=rates, draft=draft, totals=totals,
                           editing=editing_line, printed=printed,
                           receipt_lines=receipt_lines)


@bp.route("/settings", methods=["GET", "POST"])
def settings():
    store = _rate_store()
    if request.method == "POST":
        form = request.form
        action = form.get("action")
        try:
            if action == "rates":
                store.update_rates(form.get("gold_rate"), form.get("gst_rate"))
                flash("Gold rate and GST rate have been saved successfully.", "success")
            elif action == "add_category":
                added = store.add_category(form.get("name"), form.get("seikuli_rate"))
                flash(f"{added.name} has been added successfully.", "success")
            elif action == "update_category":
                store.update_category(form.get("category_id"), form.get("name"),
                                      form.get("seikuli_rate"))
                flash("Category has been updated successfully.", "success")
            elif action == "delete_category":
                name = store.delete_category(form.get("category_id"))
                flash(f"{name} has been removed successfully.", "success")
            elif action == "update_shop":
                store.update_shop(form.get("name"), form.get("address"),
                                  form.get("gst"), form.get("mobile"))
                flash("Shop details have been saved.", "success")
        except BillingError as exc:
            flash(str(exc), "error")
            if action == "update_category":
                return redirect(url_for("billing.settings", edit=form.get("category_id")))
        return redirect(url_for("billing.settings"))

    return render_template("settings.html", rates=store.snapshot(),
                           shop=store.shop_profile(), editing=request.args.get("edit"))


@bp.route("/history")
def bill_history():
    if request.args.get("reset"):
        return redirect(url_for("billing.bill_history"))
    tz = _tz()
    today = history.today(tz)
    start = end = today
    bills = []
    try:
        start = history.parse_date(request.args.get("start"), today)
        end = history.parse_date(request.args.get("end"), today)
        year = request.args.get("year")
        if year:
            try:
                year = int(year)
            except ValueError:
                raise ValidationError(f"'{year}' is not a year") from None
            start = history.shift_to_year(start, year)
            end = history.shift_to_year(end, year)
        bills = _bill_store().list_bills(start, end, tz)
    except BillingError as exc:
        flash(str(exc), "error")
    return render_template("history.html", bills=bills, start=start, end=end,
                           years=history.year_options())


@bp.route("/history/<int:bill_id>")
def bill_detail(bill_id):
    found = _bill_store().get_bill(bill_id)
    if found is None:
        abort(404)
    return render_template("bill_detail.html", bill=found)


@bp.route("/bills/<int:bill_id>/receipt")
def receipt(bill_id):
    found = _bill_store().get_bill(bill_id)
    if found is None:
        abort(404)
    path = receipt_path(current_app.config["RECEIPT_FOLDER"], found)
    build_pdf(found, _rate_store().shop_profile(), path, _tz())
    return send_file(path, as_attachment=True,
                     download_name=f"Bill_{found.id}_{found.customer_name}.pdf")


@bp.app_errorhandler(PersistenceError)
def persistence_failed(exc):
    current_app.logger.error("Database unavailable: %s", exc)
    return render_template("error.html", message=str(exc)), 503


def _configure_logging(app):
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    app.logger.setLevel(level)
    logging.getLogger("werkzeug").setLevel(level)
    package_logger = logging.getLogger("mgm_billing")
    package_logger.setLevel(level)
    if default_handler not in package_logger.handlers:
        package_logger.addHandler(default_handler)


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)
    app.config["RECEIPT_FOLDER"] = os.path.abspath(app.config["RECEIPT_FOLDER"])
    _configure_logging(app)

    db.init_app(app)
    rates = RateStore(
        default_gst=app.config["DEFAULT_GST_PERCENTAGE"],
        shop_defaults={
            "name": app.config["SHOP_NAME"],
            "address": app.config["SHOP_ADDRESS"],
            "gst": app.config["SHOP_GSTIN"],
            "mobile": app.config["SHOP_MOBILE"],
        },
    )
    rates.subscribe(lambda snap: app.logger.info(
        "Rates now gold %s/g, GST %s%%, %d categories",
        snap.gold_rate, snap.gst_percentage, len(snap.categories)))
    app.extensions["mgm_billing"] = {"rates": rates, "bills": BillStore()}

    app.register_blueprint(bp)
    app.add_template_filter(amount, "money")
    app.add_template_filter(percent, "percent")
    app.add_template_filter(lambda moment: history.to_local(moment, app.config["TIMEZONE"]),
                            "localtime")

    with app.app_context():
        db.create_all()
        rates.seed()
    return app


def main():
    app = create_app()
    app.run(host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "5000")),
            debug=os.getenv("FLASK_DEBUG") == "1")


if __name__ == "__main__":
    main()
