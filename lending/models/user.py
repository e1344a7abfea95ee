from lending.extensions import db
from lending.utils.dates import utcnow


class User(db.Model):
    __tablename__ = "users"

    ROLE_USER = "user"
    ROLE_ADMIN = "admin"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=True)
    role = db.Column(db.String(20), nullable=False, default=ROLE_USER, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
