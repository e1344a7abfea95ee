from lending.extensions import db
from lending.models.notification import Notification


class NotificationRepo:
    @staticmethod
    def write(user_id: int, message: str) -> Notification:
        row = Notification(user_id=user_id, message=message)
        db.session.add(row)
        db.session.commit()
        return row

    @staticmethod
    def write_many(user_ids, message: str) -> int:
        rows = [Notification(user_id=uid, message=message) for uid in user_ids]
        if not rows:
            return 0
        db.session.add_all(rows)
        db.session.commit()
        return len(rows)

    @staticmethod
    def list_for_user(user_id: int):
        return (
            Notification.query.filter_by(user_id=user_id)
            .order_by(Notification.time.desc())
            .all()
        )
