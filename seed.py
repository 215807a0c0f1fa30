#!/usr/bin/env python3
# seed.py
from flask import current_app

from db import db
from models.user import User


def seed_admin() -> User:
    """
    Creates or updates the admin account from ADMIN_EMAIL / ADMIN_LOGIN_ID /
    ADMIN_PASSWORD. Safe to run repeatedly.
    """
    cfg = current_app.config
    email = (cfg["ADMIN_EMAIL"] or "").strip().lower() or None
    login_id = (cfg["ADMIN_LOGIN_ID"] or "").strip() or None

    user = None
    if email:
        user = User.query.filter_by(email=email).first()
    if user is None and login_id:
        user = User.query.filter_by(login_id=login_id).first()

    if not user:
        user = User(email=email, login_id=login_id, display_name="Admin", role="admin")
        db.session.add(user)
        current_app.logger.info("[seed] creating admin account %s", login_id or email)
    else:
        # make sure an existing row is an admin with the configured password
        user.role = "admin"
        current_app.logger.info("[seed] refreshing admin account uid=%s", user.id)

    user.set_password(cfg["ADMIN_PASSWORD"])
    db.session.commit()
    return user


if __name__ == "__main__":
    from app import create_app

    app = create_app()
    with app.app_context():
        admin = seed_admin()
        print(f"Admin user seeded: loginId={admin.login_id} email={admin.email}")
