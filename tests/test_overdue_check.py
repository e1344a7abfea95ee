from datetime import timedelta

import pytest

from lending.models.borrow import BorrowStatus
from lending.models.notification import Notification
from lending.repositories.borrow_repo import BorrowRepo
from lending.services.borrow_service import BorrowService
from lending.tasks.overdue_check import run_overdue_check
from lending.tasks.scheduler import SCHEDULER_KEY, start_scheduler, stop_scheduler
from lending.utils.dates import utcnow

from conftest import ALICE, BOB, DUNE, EMMA


def _approved(user_id, book_id):
    b = BorrowService.request_borrow(user_id, book_id)
    return BorrowService.decide_request(b.borrow_id, BorrowStatus.APPROVED)


def test_sweep_marks_only_past_due_loans(app, mailer, settle):
    with app.app_context():
        late = _approved(ALICE, DUNE)
        on_time = _approved(BOB, DUNE)
        pending = BorrowService.request_borrow(ALICE, EMMA)
        now = late.due_date + timedelta(minutes=1)
        late_id, on_time_id, pending_id = late.borrow_id, on_time.borrow_id, pending.borrow_id

    # pushes bob's due date past the sweep time
    with app.app_context():
        BorrowRepo.compare_and_transition(
            on_time_id, BorrowStatus.APPROVED, lambda r: {"due_date": now + timedelta(days=3)}
        )

    result = run_overdue_check(app, now=now)
    settle()

    assert result == {"candidates": 1, "marked": 1, "skipped": 0}
    with app.app_context():
        assert BorrowRepo.get(late_id).status == BorrowStatus.OVERDUE
        assert BorrowRepo.get(on_time_id).status == BorrowStatus.APPROVED
        assert BorrowRepo.get(pending_id).status == BorrowStatus.PENDING
        assert Notification.query.filter(
            Notification.user_id == ALICE, Notification.message.contains("is overdue")
        ).count() == 1
    assert "borrow_overdue" in mailer.templates()


def test_sweep_is_a_noop_when_nothing_is_due(app, settle):
    with app.app_context():
        _approved(ALICE, DUNE)

    assert run_overdue_check(app, now=utcnow()) == {"candidates": 0, "marked": 0, "skipped": 0}


def test_second_sweep_finds_nothing(app, settle):
    with app.app_context():
        b = _approved(ALICE, DUNE)
        later = b.due_date + timedelta(days=2)

    assert run_overdue_check(app, now=later)["marked"] == 1
    assert run_overdue_check(app, now=later)["candidates"] == 0
    settle()


def test_scheduler_disabled_in_tests(app):
    assert start_scheduler(app) is None
    assert "apscheduler" not in app.extensions


@pytest.fixture
def scheduling_app(app, monkeypatch):
    app.config.update(SCHEDULER_ENABLED=True, OVERDUE_CHECK_MINUTES=7)
    monkeypatch.delenv("WERKZEUG_RUN_MAIN", raising=False)
    yield app
    stop_scheduler(app)


def test_scheduler_runs_overdue_job_on_configured_interval(scheduling_app):
    scheduler = start_scheduler(scheduling_app)

    assert scheduler is not None
    assert scheduler.running
    assert scheduling_app.extensions[SCHEDULER_KEY] is scheduler

    job = scheduler.get_job("overdue_check_job")
    assert job is not None
    assert job.trigger.interval == timedelta(minutes=7)
    assert job.max_instances == 1
    assert job.coalesce is True

    stop_scheduler(scheduling_app)
    assert not scheduler.running


def test_scheduler_skipped_in_reloader_parent_process(scheduling_app):
    scheduling_app.debug = True

    assert start_scheduler(scheduling_app) is None
    assert SCHEDULER_KEY not in scheduling_app.extensions


def test_scheduler_starts_in_reloader_child_process(scheduling_app, monkeypatch):
    scheduling_app.debug = True
    monkeypatch.setenv("WERKZEUG_RUN_MAIN", "true")

    scheduler = start_scheduler(scheduling_app)
    assert scheduler is not None
    assert scheduler.running


def test_stop_scheduler_without_scheduler_is_a_noop(app):
    stop_scheduler(app)
    assert SCHEDULER_KEY not in app.extensions
