import uuid

from lending.extensions import db
from lending.utils.dates import utcnow


class Notification(db.Model):
    __tablename__ = "notifications"

    notification_id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    message = db.Column(db.String(1000), nullable=False)
    read = db.Column(db.Boolean, nullable=False, default=False)
    time = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self):
        return {
            "notification_id": self.notification_id,
            "user_id": self.user_id,
            "message": self.message,
            "read": bool(self.read),
            "time": self.time.isoformat() if self.time else None,
        }
