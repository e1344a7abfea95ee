"""
Side-effect bundles: what a committed borrow transition should tell the
world. Everything here is a plain value; delivery lives in the dispatcher.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from lending.models.borrow import BorrowRecord, BorrowStatus


class _Admins:
    """Audience marker: every user with the admin role, resolved at delivery."""

    def __repr__(self):
        return "ADMINS"


ADMINS = _Admins()

Audience = Union[int, _Admins]


@dataclass(frozen=True)
class BorrowContext:
    """Data about the parties of a borrow, looked up before the bundle is built."""

    book_title: str
    user_email: Optional[str] = None
    request_link: str = ""
    admin_link: str = ""


@dataclass(frozen=True)
class EmailJob:
    address: Union[str, _Admins, None]
    template: str
    data: dict = field(default_factory=dict, hash=False, compare=True)


@dataclass(frozen=True)
class SideEffectBundle:
    borrow_id: str
    recipients: tuple[tuple[Audience, str], ...] = ()
    audit_entries: tuple[tuple[int, int, str], ...] = ()
    emails: tuple[EmailJob, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.recipients or self.audit_entries or self.emails)


STATUS_WORDS = {
    BorrowStatus.APPROVED: "approved",
    BorrowStatus.PENDING: "pending",
    BorrowStatus.REJECTED: "rejected",
    BorrowStatus.OVERDUE: "overdue",
    BorrowStatus.RETURNED: "returned",
    BorrowStatus.RETURN_REQUESTED: "return requested",
}


def _fmt_date(value) -> str:
    return value.strftime("%Y-%m-%d") if value else "-"


def borrow_requested(record: BorrowRecord, ctx: BorrowContext) -> SideEffectBundle:
    title = ctx.book_title
    return SideEffectBundle(
        borrow_id=record.borrow_id,
        recipients=(
            (record.user_id, f'Your borrow request for the book "{title}" has been created.'),
            (ADMINS, f'A new borrow request has been made for the book "{title}".'),
        ),
        audit_entries=((record.user_id, record.book_id, "Borrow request submitted"),),
        emails=(
            EmailJob(ADMINS, "admin_borrow_request", {"book_title": title, "link": ctx.admin_link}),
        ),
    )


def request_decided(record: BorrowRecord, ctx: BorrowContext) -> SideEffectBundle:
    title = ctx.book_title
    word = STATUS_WORDS[record.status]
    data: dict[str, Any] = {
        "book_title": title,
        "status": word,
        "link": ctx.request_link,
    }
    if record.status == BorrowStatus.APPROVED:
        data["approval_code"] = record.approval_code
        data["due_date"] = _fmt_date(record.due_date)
    else:
        data["rejection_reason"] = record.rejection_reason

    return SideEffectBundle(
        borrow_id=record.borrow_id,
        recipients=(
            (record.user_id, f'Your borrow request for the book "{title}" has been {word}.'),
            (ADMINS, f'The borrow request for the book "{title}" has been {word}.'),
        ),
        audit_entries=((record.user_id, record.book_id, f"Borrow request {word}"),),
        emails=(EmailJob(ctx.user_email, "borrow_request_status", data),),
    )


def return_requested(record: BorrowRecord, ctx: BorrowContext) -> SideEffectBundle:
    title = ctx.book_title
    return SideEffectBundle(
        borrow_id=record.borrow_id,
        recipients=(
            (record.user_id, f'Your return request for the book "{title}" has been submitted.'),
            (ADMINS, f'A new return request has been made for the book "{title}".'),
        ),
        audit_entries=((record.user_id, record.book_id, "Return request submitted"),),
        emails=(
            EmailJob(ADMINS, "admin_return_request", {"book_title": title, "link": ctx.admin_link}),
        ),
    )


def return_confirmed(record: BorrowRecord, ctx: BorrowContext) -> SideEffectBundle:
    # no status email here; the patron gets the in-app confirmation only
    title = ctx.book_title
    return SideEffectBundle(
        borrow_id=record.borrow_id,
        recipients=(
            (record.user_id, f'Your return request for the book "{title}" has been confirmed.'),
            (ADMINS, f'The return request for the book "{title}" has been confirmed.'),
        ),
        audit_entries=((record.user_id, record.book_id, "Return request confirmed"),),
    )


def marked_overdue(record: BorrowRecord, ctx: BorrowContext) -> SideEffectBundle:
    title = ctx.book_title
    due = _fmt_date(record.due_date)
    return SideEffectBundle(
        borrow_id=record.borrow_id,
        recipients=(
            (record.user_id, f'Your borrow of the book "{title}" is overdue. It was due on {due}.'),
            (ADMINS, f'The borrow of the book "{title}" is overdue (due {due}).'),
        ),
        audit_entries=((record.user_id, record.book_id, "Borrow marked overdue"),),
        emails=(
            EmailJob(
                ctx.user_email,
                "borrow_overdue",
                {"book_title": title, "due_date": due, "link": ctx.request_link},
            ),
        ),
    )
