from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from sqlalchemy import func, insert, select, update
from sqlalchemy.orm import Session

from portfolio.enums import NotificationSeverity
from portfolio.tables import notifications_table, utcnow

logger = logging.getLogger(__name__)


def create_notification(
    session: Session,
    *,
    type: NotificationSeverity | str,
    title: str,
    message: str,
    data: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    severity = NotificationSeverity(type).value
    row = session.execute(
        insert(notifications_table)
        .values(type=severity, title=title, message=message, data=dict(data) if data else None)
        .returning(*notifications_table.c)
    ).mappings().one()
    logger.info("Notification created type=%s title=%s", severity, title)
    return dict(row)


def warning(session: Session, title: str, message: str, data: Mapping[str, Any] | None = None) -> dict[str, Any]:
    return create_notification(
        session, type=NotificationSeverity.WARNING, title=title, message=message, data=data
    )


def list_notifications(session: Session, *, unread_only: bool = False, limit: int = 50) -> list[dict[str, Any]]:
    stmt = select(notifications_table).order_by(
        notifications_table.c.created_at.desc(), notifications_table.c.id.desc()
    )
    if unread_only:
        stmt = stmt.where(notifications_table.c.read_at.is_(None))
    rows = session.execute(stmt.limit(limit)).mappings().all()
    return [dict(row) for row in rows]


def unread_count(session: Session) -> int:
    return session.execute(
        select(func.count()).select_from(notifications_table).where(
            notifications_table.c.read_at.is_(None)
        )
    ).scalar_one()


def mark_read(session: Session, ids: Iterable[int] | None = None) -> int:
    """Mark the given notifications (or every unread one) as read."""
    stmt = update(notifications_table).where(notifications_table.c.read_at.is_(None))
    if ids is not None:
        stmt = stmt.where(notifications_table.c.id.in_(list(ids)))
    result = session.execute(stmt.values(read_at=utcnow()))
    return result.rowcount or 0
