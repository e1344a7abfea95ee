from lending.extensions import db
from lending.models.activity import Activity


class ActivityRepo:
    @staticmethod
    def write(user_id: int, book_id: int, action: str) -> Activity:
        row = Activity(user_id=user_id, book_id=book_id, action=action)
        db.session.add(row)
        db.session.commit()
        return row

    @staticmethod
    def list_by_user(user_id: int):
        return (
            Activity.query.filter_by(user_id=user_id)
            .order_by(Activity.timestamp.desc())
            .all()
        )

    @staticmethod
    def list_all():
        return Activity.query.order_by(Activity.timestamp.desc()).all()
