from typing import Optional

from lending.extensions import db
from lending.models.mail_log import MailLog


class MailLogRepo:
    @staticmethod
    def log(
        borrow_id: Optional[str],
        template: str,
        to_email: Optional[str],
        success: bool,
        error: Optional[str] = None,
    ) -> MailLog:
        row = MailLog(
            borrow_id=borrow_id,
            template=template,
            to_email=to_email,
            success=bool(success),
            error=(error or None) and error[:500],
        )
        db.session.add(row)
        db.session.commit()
        return row
