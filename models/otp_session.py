# models/otp_session.py
from __future__ import annotations
from datetime import datetime, timezone

from db import db


def as_utc(ts: datetime) -> datetime:
    # sqlite hands back naive datetimes; everything we write is UTC
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


class OtpSession(db.Model):
    __tablename__ = "otp_sessions"
    __table_args__ = (
        db.Index("ix_otp_sessions_contact_created", "contact", "created_at"),
    )

    id         = db.Column(db.Integer, primary_key=True, autoincrement=True)
    token      = db.Column(db.String(64), nullable=False, unique=True)       # random session token, not the code
    user_id    = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    contact    = db.Column(db.String(254), nullable=False)                   # phone or email the code went to
    code_hash  = db.Column(db.String(255), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    used       = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def is_expired(self, now: datetime) -> bool:
        return now >= as_utc(self.expires_at)

    def __repr__(self) -> str:
        return f"<OtpSession id={self.id} user_id={self.user_id} used={self.used}>"
