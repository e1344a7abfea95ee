from datetime import timedelta

import pytest
from sqlalchemy import create_mock_engine, update
from sqlalchemy.dialects import mssql
from sqlalchemy.schema import CreateIndex

from lending.errors import ConflictError, InvalidTransitionError, NotFoundError
from lending.extensions import db
from lending.models.borrow import BorrowRecord, BorrowStatus, can_transition
from lending.models.book import Book  # noqa: F401  (FK target)
from lending.models.user import User  # noqa: F401  (FK target)
from lending.repositories.borrow_repo import BorrowRepo
from lending.utils.dates import utcnow

from conftest import ALICE, DUNE


def _insert(status=BorrowStatus.PENDING, **kw):
    return BorrowRepo.insert(BorrowRecord(user_id=ALICE, book_id=DUNE, status=status, **kw))


def test_get_missing_record(ctx):
    with pytest.raises(NotFoundError):
        BorrowRepo.get("missing")


def test_partial_index_rejects_second_open_row(ctx, monkeypatch):
    _insert()
    # skip the pre-check so only the index stands in the way
    monkeypatch.setattr(BorrowRepo, "find_open", staticmethod(lambda user_id, book_id: None))

    with pytest.raises(ConflictError):
        _insert(BorrowStatus.APPROVED)

    assert BorrowRecord.query.count() == 1


def test_closed_history_rows_may_repeat(ctx):
    _insert(BorrowStatus.RETURNED, returned=True)
    _insert(BorrowStatus.RETURNED, returned=True)
    _insert(BorrowStatus.REJECTED, rejection_reason="no")
    _insert(BorrowStatus.OVERDUE)
    _insert(BorrowStatus.PENDING)

    assert BorrowRecord.query.count() == 5


def test_compare_and_transition_applies_mutation(ctx):
    rec = _insert()

    out = BorrowRepo.compare_and_transition(
        rec.borrow_id,
        BorrowStatus.PENDING,
        lambda r: {"status": BorrowStatus.REJECTED, "rejection_reason": "Lost"},
    )

    assert out.status == BorrowStatus.REJECTED
    assert out.rejection_reason == "Lost"
    assert out.updated_at >= out.created_at


def test_compare_and_transition_wrong_expected_status(ctx):
    rec = _insert()
    called = []

    with pytest.raises(InvalidTransitionError):
        BorrowRepo.compare_and_transition(
            rec.borrow_id,
            BorrowStatus.APPROVED,
            lambda r: called.append(r) or {"status": BorrowStatus.RETURN_REQUESTED},
        )

    assert called == []
    assert BorrowRepo.get(rec.borrow_id).status == BorrowStatus.PENDING


def test_compare_and_transition_loses_race(ctx):
    rec = _insert()

    def mutator(r):
        # another writer gets there first
        db.session.execute(
            update(BorrowRecord)
            .where(BorrowRecord.borrow_id == r.borrow_id)
            .values(status=BorrowStatus.REJECTED, rejection_reason="first")
        )
        return {"status": BorrowStatus.APPROVED, "approval_code": "late"}

    with pytest.raises(InvalidTransitionError):
        BorrowRepo.compare_and_transition(rec.borrow_id, BorrowStatus.PENDING, mutator)

    # the whole transaction was rolled back, including the competing write
    stored = BorrowRepo.get(rec.borrow_id)
    assert stored.status == BorrowStatus.PENDING
    assert stored.approval_code is None


def test_mutator_error_rolls_back(ctx):
    rec = _insert()

    def boom(_r):
        raise RuntimeError("bad mutation")

    with pytest.raises(RuntimeError):
        BorrowRepo.compare_and_transition(rec.borrow_id, BorrowStatus.PENDING, boom)

    assert BorrowRepo.get(rec.borrow_id).status == BorrowStatus.PENDING


def test_find_overdue_only_returns_past_due_approved(ctx):
    now = utcnow()
    late = _insert(BorrowStatus.APPROVED, due_date=now - timedelta(days=1))
    BorrowRepo.insert(BorrowRecord(user_id=ALICE, book_id=2, status=BorrowStatus.APPROVED,
                                   due_date=now + timedelta(days=1)))

    assert [b.borrow_id for b in BorrowRepo.find_overdue(now)] == [late.borrow_id]


def test_transition_table():
    assert can_transition(BorrowStatus.PENDING, BorrowStatus.APPROVED)
    assert can_transition(BorrowStatus.APPROVED, BorrowStatus.OVERDUE)
    assert not can_transition(BorrowStatus.PENDING, BorrowStatus.RETURNED)
    assert not can_transition(BorrowStatus.RETURNED, BorrowStatus.PENDING)
    assert not can_transition(BorrowStatus.OVERDUE, BorrowStatus.RETURN_REQUESTED)


def _open_index():
    (index,) = [i for i in BorrowRecord.__table__.indexes if i.name == "uq_borrows_open_user_book"]
    return index


def _table_ddl(url):
    statements = []
    engine = create_mock_engine(url, lambda sql, *a, **kw: statements.append(sql))
    BorrowRecord.__table__.create(engine, checkfirst=False)
    return [str(s.compile(dialect=engine.dialect)) for s in statements]


def test_open_index_is_filtered_on_mssql():
    ddl = str(CreateIndex(_open_index()).compile(dialect=mssql.dialect()))

    assert ddl.startswith("CREATE UNIQUE INDEX uq_borrows_open_user_book")
    assert "WHERE status IN ('PENDING', 'APPROVED', 'RETURN_REQUESTED')" in ddl


@pytest.mark.parametrize("url", ["sqlite://", "postgresql://", "mssql://"])
def test_open_index_created_where_filtered_indexes_exist(url):
    (ddl,) = [s for s in _table_ddl(url) if "uq_borrows_open_user_book" in s]
    assert "WHERE status IN" in ddl


def test_open_index_skipped_on_mysql():
    # a unique index without a filter would forbid history rows
    ddl = _table_ddl("mysql://")

    assert any(s.strip().startswith("CREATE TABLE borrows") for s in ddl)
    assert not any("uq_borrows_open_user_book" in s for s in ddl)
