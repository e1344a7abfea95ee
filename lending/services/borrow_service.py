from __future__ import annotations

import secrets
from datetime import datetime, timedelta

from flask import current_app

from lending.errors import InvalidTransitionError, NotFoundError, ValidationError
from lending.models.borrow import BorrowRecord, BorrowStatus, can_transition
from lending.repositories.book_repo import BookRepo
from lending.repositories.borrow_repo import BorrowRepo
from lending.repositories.user_repo import UserRepo
from lending.services import effects
from lending.services.dispatcher import get_dispatcher
from lending.utils.dates import utcnow


def generate_approval_code() -> str:
    return secrets.token_urlsafe(16)


class BorrowService:
    """
    Borrow lifecycle: request, decide, request return, confirm return and the
    overdue hook. Each operation commits through BorrowRepo and then hands a
    side-effect bundle to the dispatcher without waiting for it.
    """

    DECISIONS = (BorrowStatus.APPROVED, BorrowStatus.REJECTED)

    @staticmethod
    def _context(record: BorrowRecord) -> effects.BorrowContext:
        book = BookRepo.get(record.book_id)
        user = UserRepo.get_by_id(record.user_id)
        base = (current_app.config.get("BASE_URL") or "").rstrip("/")
        return effects.BorrowContext(
            book_title=book.title if book else f"Book #{record.book_id}",
            user_email=user.email if user else None,
            request_link=f"{base}/user/borrow-requests/{record.borrow_id}",
            admin_link=f"{base}/admin/borrow-requests/{record.borrow_id}",
        )

    @staticmethod
    def _emit(build, record: BorrowRecord) -> None:
        # The transition is committed at this point; nothing below may fail the caller.
        try:
            bundle = build(record, BorrowService._context(record))
            get_dispatcher().submit(bundle)
        except Exception as e:
            current_app.logger.exception(
                f"[borrow] Side effects for borrow {record.borrow_id} not dispatched: {e}"
            )

    @staticmethod
    def _transition(borrow_id: str, source: BorrowStatus, target: BorrowStatus, changes) -> BorrowRecord:
        if not can_transition(source, target):
            raise InvalidTransitionError(f"Cannot move a borrow from {source.value} to {target.value}")

        def mutator(record):
            values = changes(record) if callable(changes) else dict(changes)
            values["status"] = target
            return values

        return BorrowRepo.compare_and_transition(borrow_id, source, mutator)

    @staticmethod
    def request_borrow(user_id: int, book_id: int) -> BorrowRecord:
        book = BookRepo.get(book_id)
        if not book:
            raise NotFoundError("Book not found")

        now = utcnow()
        record = BorrowRecord(
            user_id=user_id,
            book_id=book_id,
            status=BorrowStatus.PENDING,
            borrow_date=now,
            returned=False,
            created_at=now,
            updated_at=now,
        )
        BorrowRepo.insert(record)

        BorrowService._emit(effects.borrow_requested, record)
        return record

    @staticmethod
    def decide_request(borrow_id: str, decision, rejection_reason: str | None = None) -> BorrowRecord:
        target = BorrowStatus.parse(decision)
        if target not in BorrowService.DECISIONS:
            raise ValidationError("decision must be APPROVED or REJECTED")

        reason = (rejection_reason or "").strip()
        if target == BorrowStatus.REJECTED and not reason:
            raise ValidationError("rejectionReason is required when rejecting a borrow request")

        if target == BorrowStatus.APPROVED:
            loan_days = int(current_app.config.get("LOAN_PERIOD_DAYS", 14))

            def changes(_record):
                return {
                    "approval_code": generate_approval_code(),
                    "rejection_reason": None,
                    "due_date": utcnow() + timedelta(days=loan_days),
                }

        else:
            changes = {"approval_code": None, "rejection_reason": reason}

        record = BorrowService._transition(borrow_id, BorrowStatus.PENDING, target, changes)

        BorrowService._emit(effects.request_decided, record)
        return record

    @staticmethod
    def request_return(borrow_id: str) -> BorrowRecord:
        record = BorrowService._transition(
            borrow_id,
            BorrowStatus.APPROVED,
            BorrowStatus.RETURN_REQUESTED,
            {"approval_code": None, "rejection_reason": None},
        )
        BorrowService._emit(effects.return_requested, record)
        return record

    @staticmethod
    def confirm_return(borrow_id: str) -> BorrowRecord:
        record = BorrowService._transition(
            borrow_id,
            BorrowStatus.RETURN_REQUESTED,
            BorrowStatus.RETURNED,
            {"returned": True, "approval_code": None, "rejection_reason": None},
        )
        BorrowService._emit(effects.return_confirmed, record)
        return record

    @staticmethod
    def mark_overdue(borrow_id: str, now: datetime | None = None) -> BorrowRecord:
        """Policy hook for the scheduler: APPROVED and past due -> OVERDUE."""
        now = now or utcnow()

        def changes(record):
            if record.due_date is None or now <= record.due_date:
                raise InvalidTransitionError("Borrow is not past its due date")
            return {"approval_code": None, "rejection_reason": None}

        record = BorrowService._transition(
            borrow_id, BorrowStatus.APPROVED, BorrowStatus.OVERDUE, changes
        )
        BorrowService._emit(effects.marked_overdue, record)
        return record
