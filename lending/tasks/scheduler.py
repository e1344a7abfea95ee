# lending/tasks/scheduler.py
from __future__ import annotations

import os

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

SCHEDULER_KEY = "apscheduler"


def start_scheduler(app):
    """
    Starts the periodic overdue sweep.
    - Skipped when SCHEDULER_ENABLED is off (tests, one-off CLI runs).
    - The debug reloader runs two processes; only the real one (WERKZEUG_RUN_MAIN=true) schedules.
    - Misfires are coalesced and at most one sweep runs at a time.
    """
    if not app.config.get("SCHEDULER_ENABLED", True):
        app.logger.info("[scheduler] Disabled by config.")
        return None

    if app.debug and os.environ.get("WERKZEUG_RUN_MAIN") != "true":
        app.logger.info("[scheduler] Debug reloader secondary process: scheduler skipped.")
        return None

    # imported here to keep create_app free of a services import cycle
    from lending.tasks.overdue_check import run_overdue_check

    minutes = int(app.config.get("OVERDUE_CHECK_MINUTES", 10))
    scheduler = BackgroundScheduler(timezone="UTC")

    def _job_wrapper():
        try:
            run_overdue_check(app)
        except Exception as ex:
            app.logger.exception(f"[scheduler] overdue_check job error: {ex}")

    scheduler.add_job(
        func=_job_wrapper,
        trigger=IntervalTrigger(minutes=minutes),
        id="overdue_check_job",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=120,
    )

    scheduler.start()
    app.logger.info(f"[scheduler] Overdue check job started (every {minutes} minutes).")

    app.extensions[SCHEDULER_KEY] = scheduler
    return scheduler


def stop_scheduler(app) -> None:
    scheduler = app.extensions.get(SCHEDULER_KEY)
    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        app.logger.info("[scheduler] Scheduler shutdown.")
