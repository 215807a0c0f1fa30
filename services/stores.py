# services/stores.py
"""SQLAlchemy-backed stores the auth service is wired with."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update, func

from db import db
from models.otp_session import OtpSession, as_utc
from models.user import User

__all__ = ["CredentialStore", "OtpSessionStore"]


class CredentialStore:
    def find_by_identifier(self, *, email: Optional[str] = None,
                           login_id: Optional[str] = None) -> Optional[User]:
        if email:
            return db.session.execute(
                select(User).where(func.lower(User.email) == email.strip().lower())
            ).scalar_one_or_none()
        if login_id:
            return db.session.execute(
                select(User).where(User.login_id == login_id.strip())
            ).scalar_one_or_none()
        return None

    def get(self, user_id: int) -> Optional[User]:
        return db.session.get(User, user_id)

    def verify_password(self, user: User, password: str) -> bool:
        return user.check_password(password)


class OtpSessionStore:
    def add(self, rec: OtpSession) -> OtpSession:
        db.session.add(rec)
        db.session.commit()
        return rec

    def find_by_token(self, token: str) -> Optional[OtpSession]:
        return db.session.execute(
            select(OtpSession).where(OtpSession.token == token)
        ).scalar_one_or_none()

    def count_since(self, contact: str, since: datetime) -> int:
        return db.session.execute(
            select(func.count(OtpSession.id)).where(
                OtpSession.contact == contact,
                OtpSession.created_at >= since,
            )
        ).scalar_one()

    def created_since(self, contact: str, since: datetime) -> List[datetime]:
        """Creation times inside the window, oldest first."""
        rows = db.session.execute(
            select(OtpSession.created_at)
            .where(OtpSession.contact == contact, OtpSession.created_at >= since)
            .order_by(OtpSession.created_at.asc())
        ).scalars().all()
        return [as_utc(ts) for ts in rows]

    def mark_used(self, rec: OtpSession) -> bool:
        """
        Flip used false -> true in one conditional UPDATE.
        Returns False when another request already consumed the row.
        """
        result = db.session.execute(
            update(OtpSession)
            .where(OtpSession.id == rec.id, OtpSession.used.is_(False))
            .values(used=True)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.rollback()
            return False
        db.session.commit()
        db.session.refresh(rec)
        return True
