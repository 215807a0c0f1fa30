# models/user.py
from __future__ import annotations
from db import db
from sqlalchemy.sql import func
from werkzeug.security import generate_password_hash, check_password_hash

ROLES = ("student", "teacher", "institution", "government", "admin")


class User(db.Model):
    __tablename__ = "users"

    id            = db.Column(db.Integer, primary_key=True, autoincrement=True)
    login_id      = db.Column(db.String(64), nullable=True, unique=True, index=True)   # student id / aadhaar / staff id
    email         = db.Column(db.String(254), nullable=True, unique=True, index=True)
    display_name  = db.Column(db.String(120), nullable=True)
    role          = db.Column(db.String(32), nullable=False, default="student", index=True)
    phone         = db.Column(db.String(32), nullable=True)                            # E.164, e.g. +919876543210
    password_hash = db.Column(db.String(255), nullable=False)

    created_at    = db.Column(db.DateTime, server_default=func.now(), nullable=False)
    updated_at    = db.Column(db.DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    # ── Helpers ─────────────────────────────────────────────────────────────
    def set_password(self, raw: str) -> None:
        self.password_hash = generate_password_hash(raw)

    def check_password(self, raw: str) -> bool:
        try:
            return check_password_hash(self.password_hash or "", raw or "")
        except Exception:
            return False

    @property
    def preferred_contact(self) -> str | None:
        """Phone first, email as fallback."""
        return (self.phone or "").strip() or (self.email or "").strip() or None

    def to_public(self) -> dict:
        return {
            "id": self.id,
            "loginId": self.login_id,
            "email": self.email,
            "name": self.display_name,
            "role": self.role,
            "phone": self.phone,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
