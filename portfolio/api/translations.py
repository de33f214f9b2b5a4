import logging
from typing import Any, Dict, List, Mapping

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import delete, or_, select, update
from sqlalchemy.orm import Session

from portfolio.auth import require_admin
from portfolio.config import settings
from portfolio.deps import db_session_dependency, not_found, validation_error
from portfolio.schemas import (
    DashboardTranslationUpdate,
    TranslationBatchRequest,
    TranslationBatchResult,
    TranslationCreate,
    TranslationOut,
    TranslationUpdate,
)
from portfolio.services.translation import store
from portfolio.services.translation.auto import AutoTranslationService
from portfolio.tables import translation_keys_table, translations_table

logger = logging.getLogger(__name__)

router = APIRouter(tags=["translations"])
dashboard_router = APIRouter(
    prefix="/dashboard/api/translations",
    tags=["translations"],
    dependencies=[Depends(require_admin)],
)


def _translation_out(session: Session, row: Mapping[str, Any]) -> TranslationOut:
    key_row = store.get_key(session, row["translation_key_id"])
    return TranslationOut(
        id=row["id"],
        translation_key_id=row["translation_key_id"],
        key=key_row["key"] if key_row else None,
        locale=row["locale"],
        text=row["text"],
    )


def _check_locale(locale: str) -> str:
    normalized = store.normalize_locale(locale)
    if normalized not in settings.locales:
        raise validation_error({"locale": ["The selected locale is invalid."]})
    return normalized


@router.get("/api/translations", response_model=List[TranslationOut])
async def list_translations(
    session: Session = Depends(db_session_dependency),
    _: str = Depends(require_admin),
) -> List[TranslationOut]:
    rows = session.execute(
        select(translations_table, translation_keys_table.c.key)
        .join(translation_keys_table, translation_keys_table.c.id == translations_table.c.translation_key_id)
        .order_by(translations_table.c.id)
    ).mappings().all()
    return [TranslationOut(**row) for row in rows]


@router.post("/api/translations", response_model=TranslationOut, status_code=status.HTTP_201_CREATED)
async def create_translation(
    payload: TranslationCreate,
    session: Session = Depends(db_session_dependency),
    _: str = Depends(require_admin),
) -> TranslationOut:
    locale = _check_locale(payload.locale)
    translation_key_id = store.ensure_key(session, payload.key)
    try:
        row = store.create_translation(
            session, translation_key_id=translation_key_id, locale=locale, text=payload.text
        )
    except store.TranslationExistsError:
        raise validation_error(
            {"locale": ["A translation already exists for this key and locale."]}
        ) from None
    return _translation_out(session, row)


@router.get("/api/translations/{key}/{locale}", response_model=TranslationOut)
async def show_translation(
    key: str,
    locale: str,
    session: Session = Depends(db_session_dependency),
) -> TranslationOut:
    row = store.find_by_key_and_locale(session, key, locale)
    if row is None:
        raise not_found("Translation not found")
    return _translation_out(session, row)


@router.put("/api/translations", response_model=TranslationOut)
async def update_translation(
    payload: TranslationUpdate,
    session: Session = Depends(db_session_dependency),
    _: str = Depends(require_admin),
) -> TranslationOut:
    locale = _check_locale(payload.locale)
    if payload.key:
        row = store.find_by_key_and_locale(session, payload.key, locale)
    else:
        row = store.find_translation(session, payload.translation_key_id, locale)
    if row is None:
        raise not_found("Translation not found")
    updated = session.execute(
        update(translations_table)
        .where(translations_table.c.id == row["id"])
        .values(text=payload.text)
        .returning(*translations_table.c)
    ).mappings().one()
    return _translation_out(session, updated)


@router.delete("/api/translations/{translation_id}")
async def delete_translation(
    translation_id: int,
    session: Session = Depends(db_session_dependency),
    _: str = Depends(require_admin),
) -> Dict[str, Any]:
    result = session.execute(delete(translations_table).where(translations_table.c.id == translation_id))
    if not result.rowcount:
        raise not_found("Translation not found")
    return {}


@dashboard_router.get("")
async def list_translation_keys(
    search: str | None = Query(None),
    locale: str = Query("all"),
    page: int = Query(1, ge=1),
    per_page: int = Query(15, ge=1, le=200),
    session: Session = Depends(db_session_dependency),
) -> Dict[str, Any]:
    stmt = select(translation_keys_table)
    if locale != "all":
        stmt = stmt.where(
            translation_keys_table.c.id.in_(
                select(translations_table.c.translation_key_id).where(translations_table.c.locale == locale)
            )
        )
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(
            or_(
                translation_keys_table.c.key.like(pattern),
                translation_keys_table.c.id.in_(
                    select(translations_table.c.translation_key_id).where(translations_table.c.text.like(pattern))
                ),
            )
        )
    keys = session.execute(
        stmt.order_by(translation_keys_table.c.key).offset((page - 1) * per_page).limit(per_page)
    ).mappings().all()
    items = []
    for key_row in keys:
        rows = session.execute(
            select(translations_table).where(translations_table.c.translation_key_id == key_row["id"])
        ).mappings().all()
        items.append({**dict(key_row), "translations": [dict(row) for row in rows]})
    return {
        "translation_keys": items,
        "filters": {"search": search, "locale": locale, "per_page": per_page, "page": page},
    }


@dashboard_router.put("/{translation_id}")
async def update_dashboard_translation(
    translation_id: int,
    payload: DashboardTranslationUpdate,
    session: Session = Depends(db_session_dependency),
) -> Dict[str, Any]:
    row = session.execute(
        update(translations_table)
        .where(translations_table.c.id == translation_id)
        .values(text=payload.text)
        .returning(*translations_table.c)
    ).mappings().one_or_none()
    if row is None:
        raise not_found("Translation not found")
    queued = False
    if row["locale"] == "fr":
        # The job reads the text from its own session.
        session.commit()
        queued = await AutoTranslationService(session).translate_french_to_english_if_missing(
            row["translation_key_id"]
        )
    return {
        "success": True,
        "message": "Translation updated successfully",
        "auto_translation_queued": queued,
    }


@dashboard_router.post("/{translation_key_id}/translate")
async def translate_single(
    translation_key_id: int,
    session: Session = Depends(db_session_dependency),
) -> Dict[str, Any]:
    if store.get_key(session, translation_key_id) is None:
        raise not_found("Translation key not found")
    english = store.get_text(session, translation_key_id, "en")
    if english is not None and english.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="English translation already exists",
        )
    session.commit()
    queued = await AutoTranslationService(session).translate_french_to_english_if_missing(
        translation_key_id
    )
    if not queued:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No French translation found to translate from",
        )
    return {"success": True, "message": "Translation job queued successfully"}


@dashboard_router.post("/translate-batch", response_model=TranslationBatchResult)
async def translate_batch(
    payload: TranslationBatchRequest,
    session: Session = Depends(db_session_dependency),
) -> TranslationBatchResult:
    session.commit()
    service = AutoTranslationService(session)
    queued = 0
    for translation_key_id in dict.fromkeys(payload.translation_key_ids):
        if await service.translate_french_to_english_if_missing(translation_key_id):
            queued += 1
    skipped = len(set(payload.translation_key_ids)) - queued
    logger.info("Batch translation queued=%s skipped=%s", queued, skipped)
    return TranslationBatchResult(queued=queued, skipped=skipped)
