from lending.extensions import db
from lending.utils.dates import utcnow


class MailLog(db.Model):
    __tablename__ = "mail_logs"

    id = db.Column(db.Integer, primary_key=True)
    borrow_id = db.Column(db.String(36), nullable=True, index=True)

    template = db.Column(db.String(50), nullable=False)  # borrow_request_status / borrow_overdue / ...
    to_email = db.Column(db.String(255), nullable=True)

    success = db.Column(db.Boolean, nullable=False, default=False)
    error = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
