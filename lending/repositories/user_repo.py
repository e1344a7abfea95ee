from lending.extensions import db
from lending.models.user import User


class UserRepo:
    @staticmethod
    def get_by_id(user_id: int):
        return db.session.get(User, user_id)

    @staticmethod
    def list_admins():
        return User.query.filter_by(role=User.ROLE_ADMIN).order_by(User.id).all()
