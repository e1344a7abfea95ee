from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from lending.errors import ConflictError, InvalidTransitionError, NotFoundError
from lending.extensions import db
from lending.models.borrow import OPEN_STATUSES, BorrowRecord, BorrowStatus
from lending.utils.dates import utcnow


class BorrowRepo:
    """Ledger store for borrow records.

    Status changes go through ``compare_and_transition`` only; nothing else in
    the package updates a borrow row.
    """

    @staticmethod
    def get(borrow_id: str) -> BorrowRecord:
        record = db.session.get(BorrowRecord, borrow_id, populate_existing=True)
        if record is None:
            raise NotFoundError("Borrow request not found")
        return record

    @staticmethod
    def find_open(user_id: int, book_id: int) -> Optional[BorrowRecord]:
        return BorrowRecord.query.filter(
            BorrowRecord.user_id == user_id,
            BorrowRecord.book_id == book_id,
            BorrowRecord.status.in_(OPEN_STATUSES),
        ).first()

    @staticmethod
    def list_by_user(user_id: int):
        return (
            BorrowRecord.query.filter_by(user_id=user_id)
            .order_by(BorrowRecord.created_at.desc())
            .all()
        )

    @staticmethod
    def list_all(status: Optional[BorrowStatus] = None):
        q = BorrowRecord.query
        if status is not None:
            q = q.filter(BorrowRecord.status == status)
        return q.order_by(BorrowRecord.created_at.desc()).all()

    @staticmethod
    def find_overdue(now: datetime):
        return BorrowRecord.query.filter(
            BorrowRecord.status == BorrowStatus.APPROVED,
            BorrowRecord.due_date.isnot(None),
            BorrowRecord.due_date < now,
        ).all()

    @staticmethod
    def insert(record: BorrowRecord) -> BorrowRecord:
        """
        Adds a new record. Raises ConflictError when an open borrow already
        exists for the same user and book; the partial unique index catches
        the case where two inserts pass the pre-check at the same time.
        """
        if BorrowRepo.find_open(record.user_id, record.book_id) is not None:
            db.session.rollback()
            raise ConflictError("You already have an open borrow request for this book")

        db.session.add(record)
        try:
            db.session.commit()
        except IntegrityError as e:
            db.session.rollback()
            raise ConflictError("You already have an open borrow request for this book") from e
        return record

    @staticmethod
    def compare_and_transition(
        borrow_id: str,
        expected_status: BorrowStatus,
        mutator: Callable[[BorrowRecord], dict],
    ) -> BorrowRecord:
        """
        Applies ``mutator(record)`` (a dict of column values) only if the row
        is still in ``expected_status`` at write time. The write is a single
        conditional UPDATE, so of two concurrent callers exactly one wins and
        the other gets InvalidTransitionError.
        """
        record = BorrowRepo.get(borrow_id)
        if record.status != expected_status:
            current = record.status
            db.session.rollback()
            raise InvalidTransitionError(
                f"Borrow request is {current.value}, expected {expected_status.value}"
            )

        try:
            values = dict(mutator(record))
            values["updated_at"] = utcnow()

            stmt = (
                update(BorrowRecord)
                .where(
                    BorrowRecord.borrow_id == borrow_id,
                    BorrowRecord.status == expected_status,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = db.session.execute(stmt)
            if result.rowcount != 1:
                raise InvalidTransitionError(
                    f"Borrow request is no longer {expected_status.value}"
                )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        db.session.refresh(record)
        return record
