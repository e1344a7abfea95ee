# lending/services/mail_service.py
from __future__ import annotations

from flask import current_app
from flask_mail import Message

from lending.extensions import mail


def _admin_borrow_request(data: dict) -> tuple[str, str]:
    return "New Borrow Request Notification", (
        "Dear Admin,\n\n"
        f"A new borrow request has been made for the book titled '{data.get('book_title')}'.\n"
        f"Please review the request here: {data.get('link')}\n\n"
        "Library System\n"
    )


def _admin_return_request(data: dict) -> tuple[str, str]:
    return "New Return Request Notification", (
        "Dear Admin,\n\n"
        f"A new return request has been made for the book titled '{data.get('book_title')}'.\n"
        f"Please review the request here: {data.get('link')}\n\n"
        "Library System\n"
    )


def _borrow_request_status(data: dict) -> tuple[str, str]:
    lines = [
        "Dear User,\n",
        f"Your borrow request for the book titled '{data.get('book_title')}' "
        f"has been {data.get('status')}.",
    ]
    if data.get("approval_code"):
        lines.append(f"Approval code (show it when you pick up the book): {data['approval_code']}")
        lines.append(f"Due date: {data.get('due_date')}")
    if data.get("rejection_reason"):
        lines.append(f"Reason: {data['rejection_reason']}")
    lines.append(f"\nYou can view the details of your borrow request here: {data.get('link')}\n")
    lines.append("Thank you for using our library system.\nLibrary System\n")
    return "Borrow Request Status Update", "\n".join(lines)


def _borrow_overdue(data: dict) -> tuple[str, str]:
    return "Library: Overdue book", (
        "Dear User,\n\n"
        f"The due date for '{data.get('book_title')}' has passed.\n"
        f"Due date: {data.get('due_date')}\n\n"
        "Please return it as soon as possible.\n"
        f"{data.get('link')}\n"
    )


TEMPLATES = {
    "admin_borrow_request": _admin_borrow_request,
    "admin_return_request": _admin_return_request,
    "borrow_request_status": _borrow_request_status,
    "borrow_overdue": _borrow_overdue,
}


class MailService:
    @staticmethod
    def render(template_name: str, template_data: dict) -> tuple[str, str]:
        try:
            builder = TEMPLATES[template_name]
        except KeyError:
            raise ValueError(f"Unknown mail template: {template_name}") from None
        return builder(template_data or {})

    @staticmethod
    def send_email(to_email: str, subject: str, body: str) -> tuple[bool, str | None]:
        """
        return: (success, error_text)
        """
        try:
            msg = Message(subject=subject, recipients=[to_email], body=body)
            mail.send(msg)
            return True, None
        except Exception as e:
            current_app.logger.warning(f"[MailService] Could not send mail to {to_email}: {e}")
            return False, str(e)

    @staticmethod
    def send(address: str, template_name: str, template_data: dict) -> tuple[bool, str | None]:
        if not address:
            return False, "missing_email"
        try:
            subject, body = MailService.render(template_name, template_data)
        except ValueError as e:
            return False, str(e)
        return MailService.send_email(address, subject, body)
