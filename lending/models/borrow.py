import enum
import uuid

from lending.extensions import db
from lending.utils.dates import utcnow


class BorrowStatus(enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    RETURN_REQUESTED = "RETURN_REQUESTED"
    RETURNED = "RETURNED"
    OVERDUE = "OVERDUE"

    @classmethod
    def parse(cls, value):
        """Returns the member for ``value`` (case-insensitive), or None."""
        if isinstance(value, cls):
            return value
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            return None


# At most one record per (user_id, book_id) may sit in one of these.
OPEN_STATUSES = (
    BorrowStatus.PENDING,
    BorrowStatus.APPROVED,
    BorrowStatus.RETURN_REQUESTED,
)

# Every legal edge of the borrow lifecycle. REJECTED, RETURNED and OVERDUE
# have no outgoing edges: an OVERDUE loan is closed out of band (not through
# request_return), and since OVERDUE is not open the patron may request the
# same book again.
TRANSITIONS = {
    BorrowStatus.PENDING: frozenset({BorrowStatus.APPROVED, BorrowStatus.REJECTED}),
    BorrowStatus.APPROVED: frozenset({BorrowStatus.RETURN_REQUESTED, BorrowStatus.OVERDUE}),
    BorrowStatus.RETURN_REQUESTED: frozenset({BorrowStatus.RETURNED}),
}


def can_transition(current: BorrowStatus, target: BorrowStatus) -> bool:
    return target in TRANSITIONS.get(current, ())


_open_names = ", ".join(f"'{s.name}'" for s in OPEN_STATUSES)
_open_clause = db.text(f"status IN ({_open_names})")

# Backends that support filtered indexes. Elsewhere (MySQL) a plain unique
# index would forbid history rows, so only the insert pre-check guards there.
PARTIAL_INDEX_DIALECTS = ("sqlite", "postgresql", "mssql")


class BorrowRecord(db.Model):
    __tablename__ = "borrows"

    borrow_id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    book_id = db.Column(db.Integer, db.ForeignKey("books.id"), nullable=False, index=True)

    status = db.Column(
        db.Enum(BorrowStatus, native_enum=False, length=20, validate_strings=True),
        nullable=False,
        default=BorrowStatus.PENDING,
        index=True,
    )

    borrow_date = db.Column(db.DateTime, nullable=False, default=utcnow)
    due_date = db.Column(db.DateTime, nullable=True)
    returned = db.Column(db.Boolean, nullable=False, default=False)

    approval_code = db.Column(db.String(64), nullable=True)
    rejection_reason = db.Column(db.String(1000), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    user = db.relationship("User")
    book = db.relationship("Book")

    __table_args__ = (
        # Only open borrows are unique per pair; history rows may repeat.
        db.Index(
            "uq_borrows_open_user_book",
            "user_id",
            "book_id",
            unique=True,
            sqlite_where=_open_clause,
            postgresql_where=_open_clause,
            mssql_where=_open_clause,
        ).ddl_if(dialect=PARTIAL_INDEX_DIALECTS),
    )

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    def to_dict(self, include_code: bool = True):
        data = {
            "borrow_id": self.borrow_id,
            "user_id": self.user_id,
            "book_id": self.book_id,
            "book_title": self.book.title if self.book else None,
            "status": self.status.value,
            "borrow_date": self.borrow_date.isoformat() if self.borrow_date else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "returned": bool(self.returned),
            "rejection_reason": self.rejection_reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_code:
            data["approval_code"] = self.approval_code
        return data
