from __future__ import annotations

from flask import Blueprint, current_app
from sqlalchemy import select

from app.lms.auth import request_payload
from app.lms.db import db_session
from app.lms.errors import ApiError, ok
from app.lms.modules.live_classes.models import LiveClass
from app.lms.modules.live_classes.service import (
    active_for_user,
    check_owner,
    create_live_class,
    end_live_class,
    live_class_payload,
    update_live_class,
)
from app.lms.rbac import current_user, require_login, require_roles
from app.lms.realtime import broadcast

bp = Blueprint("live_classes", __name__)


def _get_or_404(s, live_class_id: int) -> LiveClass:
    live = s.get(LiveClass, live_class_id)
    if not live:
        raise ApiError(404, "Live class not found")
    return live


@bp.post("/")
@require_roles("teacher", "admin")
def create():
    s = db_session()
    user = current_user()
    live = create_live_class(s, request_payload(), user)
    s.commit()
    broadcast("live_class_started", {"id": live.id, "title": live.title, "visibility": live.visibility})
    current_app.logger.info("Live class %s started by %s", live.id, user.email)
    return ok(201, data=live_class_payload(live))


@bp.get("/")
@require_roles("teacher", "admin")
def mine():
    s = db_session()
    rows = s.execute(
        select(LiveClass)
        .where(LiveClass.created_by_user_id == current_user().id)
        .order_by(LiveClass.created_at.desc(), LiveClass.id.desc())
    ).scalars().all()
    return ok(data=[live_class_payload(lc) for lc in rows])


@bp.get("/active")
@require_login
def active():
    return ok(data=[live_class_payload(lc) for lc in active_for_user(db_session(), current_user())])


@bp.put("/<int:live_class_id>/end")
@require_roles("teacher", "admin")
def end(live_class_id: int):
    s = db_session()
    live = _get_or_404(s, live_class_id)
    end_live_class(live, current_user())
    s.commit()
    broadcast("live_class_ended", {"id": live.id})
    return ok(message="Live class ended", data=live_class_payload(live))


@bp.put("/<int:live_class_id>")
@require_roles("teacher", "admin")
def update(live_class_id: int):
    s = db_session()
    live = _get_or_404(s, live_class_id)
    ended = update_live_class(live, request_payload(), current_user())
    s.commit()
    if ended:
        broadcast("live_class_ended", {"id": live.id})
    return ok(data=live_class_payload(live))


@bp.delete("/<int:live_class_id>")
@require_roles("teacher", "admin")
def delete(live_class_id: int):
    s = db_session()
    user = current_user()
    live = _get_or_404(s, live_class_id)
    check_owner(live, user)
    s.delete(live)
    s.commit()
    broadcast("live_class_ended", {"id": live_class_id})
    current_app.logger.info("Live class %s removed by %s", live_class_id, user.email)
    return ok(message="Live class ended and removed")
