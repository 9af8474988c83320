from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import jwt_required

from ..errors import ValidationError
from ..security import SUPER_ADMIN, current_admin_id, is_super_admin, roles_required
from ..services import get_billing
from ..utils.months import normalize_month

bp = Blueprint("bills", __name__)


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _month_from_body():
    data = _json_body()
    month = data.get("month")
    if month is None:
        return None
    return normalize_month(month)


def _generation_response(report):
    if not report.success:
        return jsonify({"success": False, "message": report.message, "error": report.error}), 500
    return jsonify({
        "success": True,
        "message": report.message,
        "data": report.statistics.to_dict(),
    }), 200


@bp.get("/bills")
@jwt_required()
def list_bills():
    """Get bills owned by the current admin"""
    status = request.args.get("status")
    page = request.args.get("page", default=1, type=int)
    limit = request.args.get("limit", default=10, type=int)
    data = get_billing().bill_service().list_bills(current_admin_id(), status, page, limit)
    return jsonify({"success": True, "data": data}), 200


@bp.post("/bills")
@jwt_required()
def create_bill():
    """Create a bill manually"""
    bill = get_billing().bill_service().create_bill(current_admin_id(), _json_body())
    return jsonify({
        "success": True,
        "message": "Bill created successfully",
        "data": bill.serialize(),
    }), 201


@bp.get("/bills/stats")
@jwt_required()
def bill_stats():
    data = get_billing().bill_service().bill_statistics(current_admin_id())
    return jsonify({"success": True, "data": data}), 200


@bp.get("/bills/<int:bill_id>")
@jwt_required()
def get_bill(bill_id):
    bill = get_billing().bill_service().get_bill(bill_id, current_admin_id())
    return jsonify({"success": True, "data": bill.serialize()}), 200


@bp.put("/bills/<int:bill_id>")
@jwt_required()
def update_bill(bill_id):
    """Edit amount, due date or description; status moves only via pay/undo"""
    bill = get_billing().bill_service().update_bill(bill_id, current_admin_id(), _json_body())
    return jsonify({
        "success": True,
        "message": "Bill updated successfully",
        "data": bill.serialize(),
    }), 200


@bp.delete("/bills/<int:bill_id>")
@jwt_required()
def delete_bill(bill_id):
    get_billing().bill_service().delete_bill(bill_id, current_admin_id())
    return jsonify({"success": True, "message": "Bill deleted successfully"}), 200


@bp.put("/bills/<int:bill_id>/pay")
@jwt_required()
def mark_bill_paid(bill_id):
    """Mark a bill as paid and credit the owning admin's profit"""
    result = get_billing().payment_service().mark_as_paid(bill_id, current_admin_id())
    return jsonify({
        "success": True,
        "message": "Bill marked as paid",
        "data": result.to_dict("added"),
    }), 200


@bp.put("/bills/<int:bill_id>/undo")
@jwt_required()
def undo_payment(bill_id):
    """Revert a paid bill back to pending"""
    result = get_billing().payment_service().undo_payment(bill_id, current_admin_id())
    return jsonify({
        "success": True,
        "message": "Payment undone",
        "data": result.to_dict("subtracted"),
    }), 200


@bp.get("/bills/profits/total")
@jwt_required()
def total_profit():
    total = get_billing().payment_service().get_total_profit(current_admin_id())
    return jsonify({"success": True, "data": {"total_profit": float(total)}}), 200


@bp.get("/bills/profits/reconcile")
@jwt_required()
def reconcile_profit():
    """Check the profit ledger against the admin's paid bills"""
    report = get_billing().payment_service().reconcile_profit(current_admin_id())
    return jsonify({"success": True, "data": report}), 200


@bp.post("/bills/generate-monthly")
@roles_required(SUPER_ADMIN)
def generate_monthly_bills():
    """Generate the month's bills for every admin"""
    month = _month_from_body()
    current_app.logger.info("Manual bill generation for all admins triggered by admin %s (month=%s)",
                            current_admin_id(), month or "current")
    report = get_billing().scheduler.trigger_generation(month)
    return _generation_response(report)


@bp.post("/bills/generate-admin")
@jwt_required()
def generate_bills_for_current_admin():
    month = _month_from_body()
    admin_id = current_admin_id()
    current_app.logger.info("Bill generation for admin %s triggered (month=%s)", admin_id, month or "current")
    report = get_billing().scheduler.trigger_generation(month, admin_id)
    return _generation_response(report)


@bp.post("/bills/generate-for-admin/<int:admin_id>")
@roles_required(SUPER_ADMIN)
def generate_bills_for_admin(admin_id):
    month = _month_from_body()
    current_app.logger.info("Bill generation for admin %s triggered by super admin %s (month=%s)",
                            admin_id, current_admin_id(), month or "current")
    report = get_billing().scheduler.trigger_generation(month, admin_id)
    return _generation_response(report)


@bp.get("/bills/generation-stats/<month>")
@jwt_required()
def generation_stats(month):
    """Read-only: existing bills vs eligible tenancies for a month"""
    admin_id = current_admin_id()
    if is_super_admin() and request.args.get("scope") == "all":
        admin_id = None
    data = get_billing().generation_service().get_generation_stats(month, admin_id)
    return jsonify({"success": True, "data": data}), 200
