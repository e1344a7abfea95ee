from flask import Blueprint, jsonify, request

from lending.errors import ValidationError
from lending.models.borrow import BorrowStatus
from lending.repositories.activity_repo import ActivityRepo
from lending.repositories.borrow_repo import BorrowRepo
from lending.services.borrow_service import BorrowService
from lending.utils.decorators import role_required

admin_bp = Blueprint("admin", __name__)


@admin_bp.get("/borrow-requests")
@role_required("admin")
def borrow_requests():
    status = None
    raw = request.args.get("status")
    if raw:
        status = BorrowStatus.parse(raw)
        if status is None:
            raise ValidationError(f"Unknown status: {raw}")

    borrows = BorrowRepo.list_all(status)
    return jsonify({"success": True, "data": [x.to_dict() for x in borrows]})


@admin_bp.get("/borrow-requests/<borrow_id>")
@role_required("admin")
def borrow_request(borrow_id):
    b = BorrowRepo.get(borrow_id)
    data = b.to_dict()
    data["user"] = {"username": b.user.username, "email": b.user.email} if b.user else None
    return jsonify({"success": True, "data": data})


@admin_bp.patch("/borrow-requests/<borrow_id>/status")
@role_required("admin")
def update_borrow_request_status(borrow_id):
    """
    Body: { "status": "APPROVED" | "REJECTED" | "RETURNED", "rejectionReason": "..." }
    RETURNED confirms a pending return request; the other two decide a PENDING request.
    """
    data = request.get_json(silent=True) or {}
    status = BorrowStatus.parse(data.get("status") or "")
    if status is None:
        raise ValidationError("status is required")

    if status == BorrowStatus.RETURNED:
        b = BorrowService.confirm_return(borrow_id)
    elif status in BorrowService.DECISIONS:
        b = BorrowService.decide_request(borrow_id, status, data.get("rejectionReason"))
    else:
        raise ValidationError(f"status cannot be set to {status.value} here")

    return jsonify({
        "success": True,
        "message": "Borrow request updated successfully",
        "data": b.to_dict(),
    })


@admin_bp.post("/borrow-requests/<borrow_id>/overdue")
@role_required("admin")
def mark_overdue(borrow_id):
    b = BorrowService.mark_overdue(borrow_id)
    return jsonify({"success": True, "data": b.to_dict()})


@admin_bp.get("/activities")
@role_required("admin")
def activities():
    rows = ActivityRepo.list_all()
    return jsonify({"success": True, "data": [a.to_dict() for a in rows]})
