from flask import Blueprint, current_app, jsonify
from flask_jwt_extended import jwt_required

from lending.repositories.notification_repo import NotificationRepo
from lending.tasks.overdue_check import run_overdue_check
from lending.utils.decorators import current_actor, role_required

notif_bp = Blueprint("notifications", __name__)


@notif_bp.get("/")
@jwt_required()
def my_notifications():
    user_id, _role = current_actor()
    rows = NotificationRepo.list_for_user(user_id)
    return jsonify({"success": True, "data": [n.to_dict() for n in rows]})


@notif_bp.post("/run-overdue-check")
@role_required("admin")
def run_overdue_check_now():
    result = run_overdue_check(current_app._get_current_object())
    return jsonify({"success": True, "message": "Overdue check finished", **result})
