import logging
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from portfolio.auth import require_admin
from portfolio.deps import db_session_dependency, validation_error
from portfolio.schemas import MarkAsBotRequest, MarkAsBotResponse
from portfolio.services.bot_detection.service import mark_as_bot
from portfolio.tables import ip_address_metadata_table, logged_requests_table

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dashboard/request-logs", tags=["request-logs"])

_BOT_FLAGS = (
    logged_requests_table.c.is_bot_by_frequency,
    logged_requests_table.c.is_bot_by_user_agent,
    logged_requests_table.c.is_bot_by_parameters,
)


def _split_ips(raw: Optional[str]) -> List[str]:
    return [part.strip() for part in (raw or "").split(",") if part.strip()]


@router.get("")
async def list_request_logs(
    is_bot: Optional[str] = Query(None, pattern="^(all|bots|humans)$"),
    search: Optional[str] = Query(None),
    include_ips: Optional[str] = Query(None),
    exclude_ips: Optional[str] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=500),
    session: Session = Depends(db_session_dependency),
    _: str = Depends(require_admin),
) -> Dict[str, Any]:
    stmt = select(
        logged_requests_table,
        ip_address_metadata_table.c.country_code,
        ip_address_metadata_table.c.lat,
        ip_address_metadata_table.c.lon,
    ).outerjoin(
        ip_address_metadata_table,
        ip_address_metadata_table.c.ip_address == logged_requests_table.c.ip_address,
    )
    if is_bot == "bots":
        stmt = stmt.where(or_(*(flag.is_(True) for flag in _BOT_FLAGS)))
    elif is_bot == "humans":
        stmt = stmt.where(*(flag.is_(False) for flag in _BOT_FLAGS))
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(
            or_(
                logged_requests_table.c.url.like(pattern),
                logged_requests_table.c.user_agent.like(pattern),
                logged_requests_table.c.ip_address.like(pattern),
                logged_requests_table.c.referer.like(pattern),
            )
        )
    included = _split_ips(include_ips)
    if included:
        stmt = stmt.where(logged_requests_table.c.ip_address.in_(included))
    excluded = _split_ips(exclude_ips)
    if excluded:
        stmt = stmt.where(logged_requests_table.c.ip_address.not_in(excluded))
    if date_from is not None:
        stmt = stmt.where(logged_requests_table.c.created_at >= datetime.combine(date_from, time.min))
    if date_to is not None:
        stmt = stmt.where(
            logged_requests_table.c.created_at < datetime.combine(date_to + timedelta(days=1), time.min)
        )
    rows = session.execute(
        stmt.order_by(logged_requests_table.c.created_at.desc(), logged_requests_table.c.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    ).mappings().all()
    items = []
    for row in rows:
        item = dict(row)
        item["is_bot"] = any(item[flag.name] for flag in _BOT_FLAGS)
        items.append(item)
    return {
        "logged_requests": items,
        "filters": {
            "is_bot": is_bot or "all",
            "search": search,
            "include_ips": included,
            "exclude_ips": excluded,
            "date_from": date_from,
            "date_to": date_to,
            "page": page,
            "per_page": per_page,
        },
    }


@router.post("/mark-as-bot", response_model=MarkAsBotResponse)
async def mark_requests_as_bot(
    payload: MarkAsBotRequest,
    session: Session = Depends(db_session_dependency),
    admin: str = Depends(require_admin),
) -> MarkAsBotResponse:
    known = set(
        session.execute(
            select(logged_requests_table.c.id).where(logged_requests_table.c.id.in_(payload.request_ids))
        ).scalars().all()
    )
    errors = {
        f"request_ids.{index}": [f"The selected request_ids.{index} is invalid."]
        for index, request_id in enumerate(payload.request_ids)
        if request_id not in known
    }
    if errors:
        raise validation_error(errors)
    updated = mark_as_bot(session, payload.request_ids, flagged_by=admin)
    logger.info("Requests manually flagged as bot by %s: %s", admin, payload.request_ids)
    return MarkAsBotResponse(
        message=f"{updated} request(s) marked as bot",
        updated_count=updated,
        requested_ids=payload.request_ids,
    )
