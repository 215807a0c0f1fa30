# routes/admin.py
from __future__ import annotations

from flask import Blueprint, jsonify, request

from auth_guard import require_role
from models.user import ROLES, User

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.route("/users", methods=["GET"])
@require_role("admin")
def list_users():
    q = User.query.order_by(User.id.asc())
    role = (request.args.get("role") or "").strip().lower()
    if role:
        if role not in ROLES:
            return jsonify(error=f"Unknown role: {role}"), 400
        q = q.filter(User.role == role)
    return jsonify(users=[u.to_public() for u in q.all()]), 200
