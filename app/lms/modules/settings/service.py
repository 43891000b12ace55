from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from app.lms.audit import record_event

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.lms.models import User
    from app.lms.modules.settings.models import SystemSetting


def get_setting(s: "Session", key: str, default: Any = None) -> Any:
    from app.lms.modules.settings.models import SystemSetting

    setting = s.execute(select(SystemSetting).where(SystemSetting.key == key)).scalar_one_or_none()
    if setting is None or setting.value is None:
        return default
    return setting.value


def settings_map(s: "Session") -> dict[str, Any]:
    from app.lms.modules.settings.models import SystemSetting

    rows = s.execute(select(SystemSetting).order_by(SystemSetting.key.asc())).scalars().all()
    return {r.key: r.value for r in rows}


def upsert_setting(s: "Session", key: str, value: Any, user: "User", description: str | None = None) -> "SystemSetting":
    from app.lms.modules.settings.models import SystemSetting

    now = datetime.utcnow()
    setting = s.execute(select(SystemSetting).where(SystemSetting.key == key)).scalar_one_or_none()
    old = setting.value if setting else None
    if setting is None:
        setting = SystemSetting(key=key, created_at=now)
        s.add(setting)
    setting.value = value
    if description is not None:
        setting.description = description
    setting.updated_by_user_id = user.id
    setting.updated_at = now
    s.flush()
    record_event(
        s,
        actor=user,
        action="setting.update",
        entity_type="SystemSetting",
        entity_id=key,
        metadata={"old": old, "new": value},
    )
    return setting


def holiday_dates(s: "Session") -> set[date]:
    """The `holidays` setting as a set of dates; malformed entries are ignored."""
    raw = get_setting(s, "holidays", [])
    if not isinstance(raw, list):
        return set()
    out: set[date] = set()
    for item in raw:
        try:
            out.add(date.fromisoformat(str(item)[:10]))
        except ValueError:
            continue
    return out
