from flask import Blueprint, jsonify
from flask_jwt_extended import jwt_required

from lending.repositories.activity_repo import ActivityRepo
from lending.repositories.borrow_repo import BorrowRepo
from lending.services.borrow_service import BorrowService
from lending.utils.decorators import current_actor

borrow_bp = Blueprint("borrow", __name__)


@borrow_bp.post("/books/<int:book_id>")
@jwt_required()
def request_borrow(book_id):
    user_id, _role = current_actor()
    b = BorrowService.request_borrow(user_id, book_id)
    return jsonify({
        "success": True,
        "message": "Book borrow request submitted successfully, awaiting admin approval",
        "borrow_id": b.borrow_id,
        "status": b.status.value,
    }), 201


@borrow_bp.post("/<borrow_id>/return")
@jwt_required()
def request_return(borrow_id):
    user_id, role = current_actor()

    # patrons may only return their own borrows
    b = BorrowRepo.get(borrow_id)
    if role != "admin" and b.user_id != user_id:
        return jsonify({"success": False, "message": "This borrow does not belong to you"}), 403

    b = BorrowService.request_return(borrow_id)
    return jsonify({
        "success": True,
        "message": "Book return request submitted successfully, awaiting admin approval",
        "borrow_id": b.borrow_id,
        "status": b.status.value,
    })


@borrow_bp.get("/my")
@jwt_required()
def my_borrows():
    user_id, _role = current_actor()
    borrows = BorrowRepo.list_by_user(user_id)
    return jsonify({"success": True, "data": [x.to_dict() for x in borrows]})


@borrow_bp.get("/activities")
@jwt_required()
def my_activities():
    user_id, _role = current_actor()
    rows = ActivityRepo.list_by_user(user_id)
    return jsonify({"success": True, "data": [a.to_dict() for a in rows]})


@borrow_bp.get("/<borrow_id>")
@jwt_required()
def my_borrow(borrow_id):
    user_id, _role = current_actor()
    b = BorrowRepo.get(borrow_id)
    if b.user_id != user_id:
        return jsonify({"success": False, "message": "Borrow request not found"}), 404
    return jsonify({"success": True, "data": b.to_dict()})
