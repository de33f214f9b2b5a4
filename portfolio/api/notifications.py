from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from portfolio.auth import require_admin
from portfolio.deps import db_session_dependency
from portfolio.schemas import NotificationMarkRead, NotificationOut
from portfolio.services import notifications

router = APIRouter(
    prefix="/dashboard/api/notifications",
    tags=["notifications"],
    dependencies=[Depends(require_admin)],
)


@router.get("", response_model=List[NotificationOut])
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    session: Session = Depends(db_session_dependency),
) -> List[Dict[str, Any]]:
    return notifications.list_notifications(session, unread_only=unread_only, limit=limit)


@router.get("/unread-count")
async def unread_count(session: Session = Depends(db_session_dependency)) -> Dict[str, int]:
    return {"count": notifications.unread_count(session)}


@router.post("/mark-read")
async def mark_read(
    payload: NotificationMarkRead,
    session: Session = Depends(db_session_dependency),
) -> Dict[str, int]:
    return {"updated": notifications.mark_read(session, payload.ids)}
