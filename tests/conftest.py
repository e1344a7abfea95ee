import threading

import pytest
from flask_jwt_extended import create_access_token

from lending import create_app
from lending.config import TestConfig
from lending.extensions import db
from lending.models.book import Book
from lending.models.user import User
from lending.services.dispatcher import get_dispatcher

ALICE, BOB, ADMIN, ADMIN2 = 1, 2, 3, 4
DUNE, EMMA = 1, 2


class RecordingMailer:
    """Stands in for MailService; remembers every send and can be told to fail."""

    def __init__(self):
        self.sent = []
        self.fail = False
        self._lock = threading.Lock()

    def send(self, address, template_name, template_data):
        with self._lock:
            self.sent.append((address, template_name, dict(template_data or {})))
        if self.fail:
            return False, "smtp unavailable"
        return True, None

    def templates(self):
        with self._lock:
            return [t for _a, t, _d in self.sent]


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def app(tmp_path, mailer):
    # a file database so worker threads share it with the test thread
    class _Config(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'lending_test.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 15}}

    app = create_app(_Config, mailer=mailer)
    with app.app_context():
        db.session.add_all([
            User(id=ALICE, username="alice", email="alice@example.com", role="user"),
            User(id=BOB, username="bob", email="bob@example.com", role="user"),
            User(id=ADMIN, username="admin", email="admin@example.com", role="admin"),
            User(id=ADMIN2, username="librarian", email="librarian@example.com", role="admin"),
            Book(id=DUNE, title="Dune", author="Frank Herbert", isbn="9780441013593"),
            Book(id=EMMA, title="Emma", author="Jane Austen", isbn="9780141439587"),
        ])
        db.session.commit()

    yield app

    app.extensions["lending_dispatcher"].shutdown()
    with app.app_context():
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def ctx(app):
    with app.app_context() as c:
        yield c


@pytest.fixture
def settle(app):
    """Waits until the dispatcher has delivered everything submitted so far."""
    def _settle(timeout=10):
        assert app.extensions["lending_dispatcher"].flush(timeout=timeout)
    return _settle


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth(app):
    def _auth(user_id, role="user"):
        with app.app_context():
            token = create_access_token(identity=str(user_id), additional_claims={"role": role})
        return {"Authorization": f"Bearer {token}"}
    return _auth


@pytest.fixture
def recorded_bundles(ctx, monkeypatch):
    """Captures bundles instead of delivering them."""
    bundles = []
    monkeypatch.setattr(get_dispatcher(), "submit", bundles.append)
    return bundles
