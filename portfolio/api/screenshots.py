import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, status
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from portfolio.auth import require_admin
from portfolio.deps import (
    check_exists,
    db_session_dependency,
    fetch_or_404,
    not_found,
    validation_error,
)
from portfolio.schemas import DraftScreenshotIn, DraftScreenshotUpdate, ScreenshotOut
from portfolio.services import screenshots
from portfolio.tables import (
    creation_draft_screenshots_table,
    creation_drafts_table,
    pictures_table,
    translation_keys_table,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/dashboard/api/creation-drafts/{draft_id}/draft-screenshots",
    tags=["screenshots"],
    dependencies=[Depends(require_admin)],
)


def _screenshot_or_404(session: Session, draft_id: int, screenshot_id: int) -> Dict[str, Any]:
    row = session.execute(
        select(creation_draft_screenshots_table).where(
            creation_draft_screenshots_table.c.id == screenshot_id,
            creation_draft_screenshots_table.c.creation_draft_id == draft_id,
        )
    ).mappings().one_or_none()
    if row is None:
        raise not_found("Screenshot not found")
    return dict(row)


@router.get("", response_model=List[ScreenshotOut])
async def list_screenshots(
    draft_id: int,
    session: Session = Depends(db_session_dependency),
) -> List[Dict[str, Any]]:
    fetch_or_404(session, creation_drafts_table, draft_id, "Creation draft not found")
    return screenshots.list_draft_screenshots(session, draft_id)


@router.post("", response_model=ScreenshotOut, status_code=status.HTTP_201_CREATED)
async def create_screenshot(
    draft_id: int,
    payload: DraftScreenshotIn,
    session: Session = Depends(db_session_dependency),
) -> Dict[str, Any]:
    fetch_or_404(session, creation_drafts_table, draft_id, "Creation draft not found")
    errors: Dict[str, List[str]] = {}
    check_exists(session, errors, pictures_table, "picture_id", payload.picture_id)
    check_exists(
        session,
        errors,
        translation_keys_table,
        "caption_translation_key_id",
        payload.caption_translation_key_id,
    )
    if errors:
        raise validation_error(errors)
    return screenshots.add_draft_screenshot(
        session,
        draft_id,
        picture_id=payload.picture_id,
        caption_translation_key_id=payload.caption_translation_key_id,
    )


@router.put("/reorder", response_model=List[ScreenshotOut])
async def reorder_screenshots(
    draft_id: int,
    payload: Any = Body(None),
    session: Session = Depends(db_session_dependency),
) -> List[Dict[str, Any]]:
    fetch_or_404(session, creation_drafts_table, draft_id, "Creation draft not found")
    try:
        return screenshots.reorder_draft_screenshots(session, draft_id, payload)
    except screenshots.ReorderValidationError as exc:
        raise validation_error(exc.errors) from None


@router.get("/{screenshot_id}", response_model=ScreenshotOut)
async def show_screenshot(
    draft_id: int,
    screenshot_id: int,
    session: Session = Depends(db_session_dependency),
) -> Dict[str, Any]:
    return _screenshot_or_404(session, draft_id, screenshot_id)


@router.put("/{screenshot_id}", response_model=ScreenshotOut)
async def update_screenshot(
    draft_id: int,
    screenshot_id: int,
    payload: DraftScreenshotUpdate,
    session: Session = Depends(db_session_dependency),
) -> Dict[str, Any]:
    _screenshot_or_404(session, draft_id, screenshot_id)
    errors: Dict[str, List[str]] = {}
    check_exists(
        session,
        errors,
        translation_keys_table,
        "caption_translation_key_id",
        payload.caption_translation_key_id,
    )
    if errors:
        raise validation_error(errors)
    row = session.execute(
        update(creation_draft_screenshots_table)
        .where(creation_draft_screenshots_table.c.id == screenshot_id)
        .values(caption_translation_key_id=payload.caption_translation_key_id)
        .returning(*creation_draft_screenshots_table.c)
    ).mappings().one()
    return dict(row)


@router.delete("/{screenshot_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_screenshot(
    draft_id: int,
    screenshot_id: int,
    session: Session = Depends(db_session_dependency),
) -> None:
    _screenshot_or_404(session, draft_id, screenshot_id)
    screenshots.remove_draft_screenshot(session, screenshot_id)
    logger.info("Removed screenshot %s from draft %s", screenshot_id, draft_id)
