from __future__ import annotations

from flask import Blueprint

from app.lms.auth import request_payload
from app.lms.db import db_session
from app.lms.errors import ApiError, ok
from app.lms.modules.settings.service import settings_map, upsert_setting
from app.lms.rbac import current_user, require_login, require_roles

bp = Blueprint("settings", __name__)


@bp.get("/")
@require_login
def list_settings():
    return ok(data=settings_map(db_session()))


@bp.put("/<key>")
@require_roles("admin")
def update_setting(key: str):
    s = db_session()
    data = request_payload()
    if "value" not in data:
        raise ApiError(400, "value is required")
    setting = upsert_setting(s, key.strip(), data["value"], current_user(), description=data.get("description"))
    s.commit()
    return ok(data=setting.to_dict())
