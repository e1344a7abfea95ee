# lending/tasks/overdue_check.py
from __future__ import annotations

from datetime import datetime

from lending.errors import LendingError
from lending.extensions import db
from lending.repositories.borrow_repo import BorrowRepo
from lending.services.borrow_service import BorrowService
from lending.utils.dates import utcnow


def run_overdue_check(app, now: datetime | None = None) -> dict:
    """
    Moves every APPROVED borrow whose due_date has passed to OVERDUE.
    - Each record goes through BorrowService.mark_overdue, so notices,
      audit entries and the overdue email come from the usual bundle.
    - A record that changed status in the meantime (returned, already
      marked) is counted as skipped, not as an error.
    """
    with app.app_context():
        now = now or utcnow()
        marked = 0
        skipped = 0

        try:
            borrow_ids = [b.borrow_id for b in BorrowRepo.find_overdue(now)]
        except Exception as e:
            db.session.rollback()
            app.logger.exception(f"[overdue_check] Could not load overdue borrows: {e}")
            return {"candidates": 0, "marked": 0, "skipped": 0}

        for borrow_id in borrow_ids:
            try:
                BorrowService.mark_overdue(borrow_id, now=now)
                marked += 1
            except LendingError as e:
                skipped += 1
                app.logger.info(f"[overdue_check] borrow={borrow_id} skipped: {e.message}")

        app.logger.info(
            f"[overdue_check] candidates={len(borrow_ids)} marked={marked} skipped={skipped}"
        )
        return {"candidates": len(borrow_ids), "marked": marked, "skipped": skipped}
