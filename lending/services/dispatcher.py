# lending/services/dispatcher.py
from __future__ import annotations

import atexit
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait

from flask import current_app

from lending.errors import DispatchError
from lending.extensions import db
from lending.repositories.activity_repo import ActivityRepo
from lending.repositories.mail_log_repo import MailLogRepo
from lending.repositories.notification_repo import NotificationRepo
from lending.repositories.user_repo import UserRepo
from lending.services.effects import ADMINS, EmailJob, SideEffectBundle
from lending.services.mail_service import MailService

EXTENSION_KEY = "lending_dispatcher"


class Dispatcher:
    """
    Delivers side-effect bundles off the request thread.

    In-app notices and audit entries go through a single-worker pool so they
    land in submission order; emails go through their own pool, so a slow
    SMTP server only ever ties up mail workers. Every failure is logged and
    dropped: the borrow transition that produced the bundle is already
    committed and nothing here can undo it.
    """

    def __init__(self, app, mailer=MailService, mail_workers: int = 4, mail_backlog: int = 100):
        self.app = app
        self.mailer = mailer
        self.mail_backlog = mail_backlog

        self._store_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="lending-store")
        self._mail_pool = ThreadPoolExecutor(max_workers=mail_workers, thread_name_prefix="lending-mail")

        self._lock = threading.RLock()
        self._pending: set[Future] = set()
        self._mail_in_flight = 0
        self._closed = False

    # -----------------------------
    # Submission
    # -----------------------------
    def submit(self, bundle: SideEffectBundle) -> None:
        if bundle.is_empty:
            return

        with self._lock:
            if self._closed:
                self.app.logger.warning(
                    f"[dispatcher] Shut down, dropping bundle for borrow {bundle.borrow_id}"
                )
                return

            if bundle.recipients or bundle.audit_entries:
                self._track(self._store_pool.submit(self._deliver_records, bundle))

            for job in bundle.emails:
                if self._mail_in_flight >= self.mail_backlog:
                    self.app.logger.warning(
                        f"[dispatcher] Mail backlog full ({self.mail_backlog}), "
                        f"dropping '{job.template}' for borrow {bundle.borrow_id}"
                    )
                    continue
                self._mail_in_flight += 1
                self._track(self._mail_pool.submit(self._deliver_email, bundle.borrow_id, job))

    def _track(self, fut: Future) -> None:
        self._pending.add(fut)
        fut.add_done_callback(self._untrack)

    def _untrack(self, fut: Future) -> None:
        with self._lock:
            self._pending.discard(fut)

    def flush(self, timeout: float | None = None) -> bool:
        """Waits for everything submitted so far. Returns False on timeout."""
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _done, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait_for_pending: bool = True) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._store_pool.shutdown(wait=wait_for_pending)
        self._mail_pool.shutdown(wait=wait_for_pending)

    # -----------------------------
    # Delivery (background threads)
    # -----------------------------
    def _report(self, err: DispatchError, borrow_id: str) -> None:
        self.app.logger.warning(f"[dispatcher] borrow={borrow_id} {err}")

    def _deliver_records(self, bundle: SideEffectBundle) -> None:
        with self.app.app_context():
            for audience, message in bundle.recipients:
                try:
                    if audience is ADMINS:
                        admin_ids = [u.id for u in UserRepo.list_admins()]
                        NotificationRepo.write_many(admin_ids, message)
                    else:
                        NotificationRepo.write(audience, message)
                except Exception as e:
                    db.session.rollback()
                    self._report(DispatchError("notification", audience, e), bundle.borrow_id)

            for user_id, book_id, action in bundle.audit_entries:
                try:
                    ActivityRepo.write(user_id, book_id, action)
                except Exception as e:
                    db.session.rollback()
                    self._report(DispatchError("audit", user_id, e), bundle.borrow_id)

    def _deliver_email(self, borrow_id: str, job: EmailJob) -> None:
        try:
            with self.app.app_context():
                if job.address is ADMINS:
                    addresses = [u.email for u in UserRepo.list_admins() if u.email]
                    if not addresses:
                        self.app.logger.info("[dispatcher] No admins found to notify.")
                else:
                    addresses = [job.address]

                for address in addresses:
                    self._send_one(borrow_id, job, address)
        except Exception as e:
            self._report(DispatchError("email", job.address, e), borrow_id)
        finally:
            with self._lock:
                self._mail_in_flight -= 1

    def _send_one(self, borrow_id: str, job: EmailJob, address) -> None:
        if not address:
            ok, err = False, "missing_email"
        else:
            try:
                ok, err = self.mailer.send(address, job.template, job.data)
            except Exception as e:
                ok, err = False, str(e)

        if not ok:
            self._report(
                DispatchError("email", address, RuntimeError(err or "unknown error")), borrow_id
            )

        try:
            MailLogRepo.log(borrow_id, job.template, address, ok, err)
        except Exception as e:
            db.session.rollback()
            self._report(DispatchError("mail_log", address, e), borrow_id)


def init_dispatcher(app, mailer=None) -> Dispatcher:
    dispatcher = Dispatcher(
        app,
        mailer=mailer or MailService,
        mail_workers=app.config.get("DISPATCH_MAIL_WORKERS", 4),
        mail_backlog=app.config.get("DISPATCH_MAIL_BACKLOG", 100),
    )
    app.extensions[EXTENSION_KEY] = dispatcher
    atexit.register(dispatcher.shutdown, False)
    return dispatcher


def get_dispatcher() -> Dispatcher:
    return current_app.extensions[EXTENSION_KEY]
