# backend/app.py
from __future__ import annotations

import logging
import os

from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from config import config_for
from db import db, migrate
from errors import AuthError, RateLimited

# Ensure models are imported so Flask-Migrate sees them
from models.user import User
from models.otp_session import OtpSession

# Blueprints
from routes.auth import auth_bp
from routes.admin import admin_bp

from services.auth import build_auth_service
from seed import seed_admin
from tasks.purge_otp import purge_expired_otp_sessions


def create_app(config_object=None) -> Flask:
    app = Flask(__name__)

    # Respect reverse proxy headers (scheme / host) for correct URL generation
    app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)  # type: ignore[arg-type]

    # Load config + init extensions
    app.config.from_object(config_object or config_for())
    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    CORS(app, resources={r"/api/*": {"origins": app.config.get("CORS_ORIGINS", "*")}})
    db.init_app(app)
    migrate.init_app(app, db)

    with app.app_context():
        # Touch models so Alembic/Flask-Migrate registers them
        _ = (User, OtpSession)
        db.create_all()

    app.extensions["edudata.auth"] = build_auth_service(app.config)

    # Health check
    @app.route("/")
    def health_check():
        return jsonify(status="ok"), 200

    @app.errorhandler(404)
    def handle_404(e):
        return jsonify(error="Not Found", path=request.path), 404

    @app.errorhandler(AuthError)
    def handle_auth_error(e: AuthError):
        resp = jsonify(e.to_dict())
        resp.status_code = e.status_code
        if isinstance(e, RateLimited):
            resp.headers["Retry-After"] = str(e.retry_after)
        return resp

    # Global error handler
    @app.errorhandler(Exception)
    def handle_any_error(e: Exception):
        if isinstance(e, HTTPException):
            return jsonify(error=e.description), e.code
        app.logger.exception("[app] unhandled error on %s %s", request.method, request.path)
        db.session.rollback()
        return jsonify(error=str(e)), 500

    # Register blueprints
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)

    @app.cli.command("seed-admin")
    def seed_admin_cmd():
        admin = seed_admin()
        print(f"Admin user seeded: loginId={admin.login_id} email={admin.email}")

    @app.cli.command("purge-otp")
    def purge_otp_cmd():
        n = purge_expired_otp_sessions()
        print(f"Removed {n} expired OTP sessions.")

    return app


# Optional local entrypoint (useful for quick dev runs)
if __name__ == "__main__":
    app = create_app()
    app.run(
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "5000")),
        debug=bool(os.environ.get("FLASK_DEBUG", "")),
    )
