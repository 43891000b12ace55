from __future__ import annotations

from flask import Blueprint, request

from app.lms.db import db_session
from app.lms.errors import ok
from app.lms.modules.stats.service import admin_dashboard, parse_range
from app.lms.rbac import require_roles

bp = Blueprint("stats", __name__)


@bp.get("/admin-dashboard")
@require_roles("admin")
def dashboard():
    window = parse_range(request.args.get("start_date"), request.args.get("end_date"), request.args.get("month"))
    return ok(data=admin_dashboard(db_session(), window))
