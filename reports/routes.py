import logging
from io import BytesIO

from flask import Blueprint, current_app, jsonify, request, send_file

from helpers import parse_date
from models import Inventory, Supplier
from security import STAFF_ROLES, roles_required
from inventory.analysis import summarize
from notifications.service import total_inventory_kg
from reports import pdf
from reports.service import (
    daily_inventory_report,
    daily_supplier_report,
    dashboard_report,
    monthly_inventory_report,
    monthly_supplier_report,
    normalize_period,
)
from suppliers.routes import supplier_to_dict

logger = logging.getLogger(__name__)

reports_bp = Blueprint("reports", __name__)


def _day_or_400(value):
    try:
        return parse_date(value), None
    except ValueError:
        return None, (jsonify({"error": "Date parameter is required (YYYY-MM-DD format)"}), 400)


def _month_or_400(year, month):
    if not 1 <= month <= 12 or year < 1:
        return jsonify({"error": "Year and month parameters are required"}), 400
    return None


@reports_bp.get("/suppliers/daily/<day>")
@roles_required(*STAFF_ROLES)
def api_report_suppliers_daily(day):
    parsed, error = _day_or_400(day)
    if error:
        return error
    return jsonify(daily_supplier_report(parsed)), 200


@reports_bp.get("/suppliers/monthly/<int:year>/<int:month>")
@roles_required(*STAFF_ROLES)
def api_report_suppliers_monthly(year: int, month: int):
    error = _month_or_400(year, month)
    if error:
        return error
    return jsonify(monthly_supplier_report(year, month)), 200


@reports_bp.get("/inventory/daily/<day>")
@roles_required(*STAFF_ROLES)
def api_report_inventory_daily(day):
    parsed, error = _day_or_400(day)
    if error:
        return error
    return jsonify(daily_inventory_report(parsed)), 200


@reports_bp.get("/inventory/monthly/<int:year>/<int:month>")
@roles_required(*STAFF_ROLES)
def api_report_inventory_monthly(year: int, month: int):
    error = _month_or_400(year, month)
    if error:
        return error
    return jsonify(monthly_inventory_report(year, month)), 200


@reports_bp.get("/dashboard")
@roles_required(*STAFF_ROLES)
def api_report_dashboard():
    period = normalize_period(request.args.get("period"))
    return jsonify(dashboard_report(period)), 200


@reports_bp.get("/<report_type>/pdf")
@roles_required(*STAFF_ROLES)
def api_report_pdf(report_type):
    report_type = (report_type or "").lower()
    if report_type not in pdf.REPORT_TYPES:
        return jsonify(
            {"error": f"Unknown report type: {report_type}. Use one of: {', '.join(pdf.REPORT_TYPES)}"}
        ), 400

    if report_type == "inventory":
        rows = [
            {"inventoryid": i.inventoryid, "quantity": i.quantity, "created_at": i.created_at}
            for i in Inventory.query.all()
        ]
        content = pdf.inventory_report(
            summarize(
                rows,
                total_kg=total_inventory_kg(),
                minimum=current_app.config["LOW_INVENTORY_THRESHOLD_KG"],
            )
        )
    elif report_type == "supplier":
        suppliers = (
            Supplier.query.filter(Supplier.is_active.is_(True)).order_by(Supplier.supplier_id).all()
        )
        content = pdf.supplier_report(
            [supplier_to_dict(s) for s in suppliers], dashboard_report("30d")
        )
    else:
        period = normalize_period(request.args.get("period"))
        content = pdf.dashboard_report(dashboard_report(period))

    logger.info("Generated %s report (%d bytes)", report_type, len(content))
    return send_file(
        BytesIO(content),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=pdf.report_filename(report_type),
    )
