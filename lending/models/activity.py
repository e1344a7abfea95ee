import uuid

from lending.extensions import db
from lending.utils.dates import utcnow


class Activity(db.Model):
    """Audit trail entry, one per committed borrow transition."""

    __tablename__ = "activities"

    activity_id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    book_id = db.Column(db.Integer, db.ForeignKey("books.id"), nullable=False, index=True)
    action = db.Column(db.String(255), nullable=False)
    timestamp = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    book = db.relationship("Book")

    def to_dict(self):
        return {
            "activity_id": self.activity_id,
            "user_id": self.user_id,
            "book_id": self.book_id,
            "book_title": self.book.title if self.book else None,
            "action": self.action,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }
