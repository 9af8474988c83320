from flask import Blueprint, current_app, jsonify
from flask_jwt_extended import jwt_required

from ..security import SUPER_ADMIN, current_admin_id, roles_required
from ..services import get_billing

bp = Blueprint("bill_scheduler", __name__)


@bp.get("/bills/scheduler/status")
@jwt_required()
def scheduler_status():
    return jsonify({"success": True, "data": get_billing().scheduler.get_status()}), 200


@bp.post("/bills/scheduler/reset")
@roles_required(SUPER_ADMIN)
def reset_scheduler_flag():
    """Clear a run flag left behind by a crashed generation run"""
    current_app.logger.warning("Bill scheduler flag reset requested by admin %s", current_admin_id())
    get_billing().coordinator.reset_running_flag()
    return jsonify({"success": True, "message": "Bill scheduler flag reset successfully"}), 200
