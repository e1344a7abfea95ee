import atexit

from flask import Flask, jsonify

from lending.config import Config
from lending.errors import LendingError
from lending.extensions import db, migrate, jwt, mail


def create_app(config_object=Config, mailer=None):
    app = Flask(__name__)
    app.config.from_object(config_object)

    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    mail.init_app(app)

    # models must be imported before create_all sees their tables
    from lending.models import activity, book, borrow, mail_log, notification, user  # noqa: F401

    if app.config.get("CREATE_TABLES_ON_STARTUP"):
        with app.app_context():
            db.create_all()

    from lending.controllers.borrow_controller import borrow_bp
    from lending.controllers.admin_controller import admin_bp
    from lending.controllers.notification_controller import notif_bp
    app.register_blueprint(borrow_bp, url_prefix="/borrow")
    app.register_blueprint(admin_bp, url_prefix="/admin")
    app.register_blueprint(notif_bp, url_prefix="/notifications")

    @app.errorhandler(LendingError)
    def handle_lending_error(err):
        return jsonify(err.to_dict()), err.status_code

    @app.get("/health")
    def health():
        return jsonify({"ok": True})

    # Side-effect delivery (notices, audit trail, email)
    from lending.services.dispatcher import init_dispatcher
    init_dispatcher(app, mailer=mailer)

    # Scheduler (overdue sweep)
    from lending.tasks.scheduler import start_scheduler, stop_scheduler
    if start_scheduler(app) is not None:
        atexit.register(stop_scheduler, app)

    return app
