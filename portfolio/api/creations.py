import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from portfolio.auth import require_admin
from portfolio.deps import (
    check_exists,
    check_unique,
    db_session_dependency,
    fetch_or_404,
    not_found,
    validation_error,
)
from portfolio.schemas import CreationDraftIn, RelationAttach
from portfolio.services import creations as creation_service
from portfolio.tables import (
    creation_drafts_table,
    creations_table,
    pictures_table,
    translation_keys_table,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dashboard/api", tags=["creations"], dependencies=[Depends(require_admin)])

RELATION_SEGMENTS = {"tag": "tags", "technology": "technologies", "video": "videos"}


def _with_relations(session: Session, row: Dict[str, Any], *, published: bool) -> Dict[str, Any]:
    return {
        **row,
        "tags": creation_service.related_ids(session, row["id"], "tags", published=published),
        "technologies": creation_service.related_ids(session, row["id"], "technologies", published=published),
        "videos": creation_service.related_ids(session, row["id"], "videos", published=published),
    }


def _validate_draft(session: Session, payload: CreationDraftIn) -> None:
    errors: Dict[str, List[str]] = {}
    check_exists(session, errors, pictures_table, "logo_id", payload.logo_id)
    check_exists(session, errors, pictures_table, "cover_image_id", payload.cover_image_id)
    check_exists(
        session,
        errors,
        translation_keys_table,
        "short_description_translation_key_id",
        payload.short_description_translation_key_id,
    )
    check_exists(
        session,
        errors,
        translation_keys_table,
        "full_description_translation_key_id",
        payload.full_description_translation_key_id,
    )
    check_exists(session, errors, creations_table, "original_creation_id", payload.original_creation_id)
    if errors:
        raise validation_error(errors)


@router.get("/creations")
async def list_creations(
    with_drafts: bool = Query(False),
    session: Session = Depends(db_session_dependency),
) -> List[Dict[str, Any]]:
    rows = session.execute(
        select(creations_table).order_by(creations_table.c.started_at.desc(), creations_table.c.id.desc())
    ).mappings().all()
    items = [_with_relations(session, dict(row), published=True) for row in rows]
    if with_drafts:
        drafts = session.execute(
            select(creation_drafts_table.c.id, creation_drafts_table.c.original_creation_id).where(
                creation_drafts_table.c.original_creation_id.is_not(None)
            )
        ).all()
        by_creation: Dict[int, List[int]] = {}
        for draft_id, creation_id in drafts:
            by_creation.setdefault(creation_id, []).append(draft_id)
        for item in items:
            item["draft_ids"] = by_creation.get(item["id"], [])
    return items


@router.get("/creations/{creation_id}")
async def show_creation(
    creation_id: int,
    session: Session = Depends(db_session_dependency),
) -> Dict[str, Any]:
    row = fetch_or_404(session, creations_table, creation_id, "Creation not found")
    return {
        **_with_relations(session, row, published=True),
        "screenshots": creation_service.list_screenshots(session, creation_id),
    }


@router.delete("/creations/{creation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_creation(
    creation_id: int,
    session: Session = Depends(db_session_dependency),
) -> None:
    fetch_or_404(session, creations_table, creation_id, "Creation not found")
    session.execute(delete(creations_table).where(creations_table.c.id == creation_id))
    logger.info("Deleted creation %s", creation_id)


@router.get("/creation-drafts")
async def list_drafts(session: Session = Depends(db_session_dependency)) -> List[Dict[str, Any]]:
    rows = session.execute(
        select(creation_drafts_table).order_by(creation_drafts_table.c.id.desc())
    ).mappings().all()
    return [_with_relations(session, dict(row), published=False) for row in rows]


@router.post("/creation-drafts", status_code=status.HTTP_201_CREATED)
async def create_draft(
    payload: CreationDraftIn,
    session: Session = Depends(db_session_dependency),
) -> Dict[str, Any]:
    _validate_draft(session, payload)
    draft = creation_service.create_draft(session, payload.model_dump())
    return _with_relations(session, draft, published=False)


@router.get("/creation-drafts/{draft_id}")
async def show_draft(
    draft_id: int,
    session: Session = Depends(db_session_dependency),
) -> Dict[str, Any]:
    draft = fetch_or_404(session, creation_drafts_table, draft_id, "Creation draft not found")
    return _with_relations(session, draft, published=False)


@router.put("/creation-drafts/{draft_id}")
async def update_draft(
    draft_id: int,
    payload: CreationDraftIn,
    session: Session = Depends(db_session_dependency),
) -> Dict[str, Any]:
    fetch_or_404(session, creation_drafts_table, draft_id, "Creation draft not found")
    _validate_draft(session, payload)
    draft = creation_service.update_draft(session, draft_id, payload.model_dump())
    return _with_relations(session, draft, published=False)


@router.delete("/creation-drafts/{draft_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_draft(
    draft_id: int,
    session: Session = Depends(db_session_dependency),
) -> None:
    fetch_or_404(session, creation_drafts_table, draft_id, "Creation draft not found")
    session.execute(delete(creation_drafts_table).where(creation_drafts_table.c.id == draft_id))


@router.post("/creations/{creation_id}/draft", status_code=status.HTTP_201_CREATED)
async def create_draft_from_creation(
    creation_id: int,
    session: Session = Depends(db_session_dependency),
) -> Dict[str, Any]:
    existing: Optional[int] = session.execute(
        select(creation_drafts_table.c.id).where(creation_drafts_table.c.original_creation_id == creation_id)
    ).scalar()
    if existing is not None:
        draft = fetch_or_404(session, creation_drafts_table, existing, "Creation draft not found")
        return _with_relations(session, draft, published=False)
    try:
        draft = creation_service.draft_from_creation(session, creation_id)
    except LookupError:
        raise not_found("Creation not found") from None
    return _with_relations(session, draft, published=False)


@router.post("/creation-drafts/{draft_id}/publish")
async def publish_draft(
    draft_id: int,
    session: Session = Depends(db_session_dependency),
) -> Dict[str, Any]:
    draft = fetch_or_404(session, creation_drafts_table, draft_id, "Creation draft not found")
    errors: Dict[str, List[str]] = dict(creation_service.publish_errors(draft))
    check_unique(session, errors, creations_table, "slug", draft["slug"], draft["original_creation_id"])
    if errors:
        raise validation_error(errors)
    creation = creation_service.publish_draft(session, draft_id)
    return _with_relations(session, creation, published=True)


@router.get("/creation-drafts/{draft_id}/relations/{relation}")
async def list_relation(
    draft_id: int,
    relation: str,
    session: Session = Depends(db_session_dependency),
) -> List[Dict[str, Any]]:
    if relation not in creation_service.RELATIONS:
        raise not_found()
    fetch_or_404(session, creation_drafts_table, draft_id, "Creation draft not found")
    return creation_service.related_rows(session, draft_id, relation)


def _relation_request(
    session: Session, draft_id: int, segment: str, payload: RelationAttach
) -> str:
    relation = RELATION_SEGMENTS.get(segment)
    if relation is None:
        raise not_found()
    fetch_or_404(session, creation_drafts_table, draft_id, "Creation draft not found")
    target = creation_service.RELATIONS[relation][3]
    known = set(session.execute(select(target.c.id).where(target.c.id.in_(payload.ids))).scalars().all())
    errors = {
        f"ids.{index}": [f"The selected ids.{index} is invalid."]
        for index, target_id in enumerate(payload.ids)
        if target_id not in known
    }
    if errors:
        raise validation_error(errors)
    return relation


@router.post("/creation-drafts/{draft_id}/attach-{segment}")
async def attach_relation(
    draft_id: int,
    segment: str,
    payload: RelationAttach,
    session: Session = Depends(db_session_dependency),
) -> Dict[str, Any]:
    relation = _relation_request(session, draft_id, segment, payload)
    return {relation: creation_service.attach(session, draft_id, relation, payload.ids)}


@router.post("/creation-drafts/{draft_id}/detach-{segment}")
async def detach_relation(
    draft_id: int,
    segment: str,
    payload: RelationAttach,
    session: Session = Depends(db_session_dependency),
) -> Dict[str, Any]:
    relation = _relation_request(session, draft_id, segment, payload)
    return {relation: creation_service.detach(session, draft_id, relation, payload.ids)}
