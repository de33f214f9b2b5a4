import logging
import re
import unicodedata
import uuid
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import Table, delete, func, insert, select, update
from sqlalchemy.orm import Session

from portfolio.auth import require_admin
from portfolio.deps import (
    check_exists,
    check_unique,
    db_session_dependency,
    fetch_or_404,
    validation_error,
)
from portfolio.schemas import (
    SocialMediaLinkIn,
    SocialMediaLinkOut,
    TagIn,
    TagOut,
    TechnologyIn,
    TechnologyUpdate,
)
from portfolio.services.pictures import serialize_pictures
from portfolio.services.translation import store
from portfolio.tables import (
    creation_draft_tag_table,
    creation_draft_technology_table,
    creation_tag_table,
    creation_technology_table,
    pictures_table,
    social_media_links_table,
    tags_table,
    technologies_table,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dashboard/api", tags=["catalog"], dependencies=[Depends(require_admin)])

_SLUG_STRIP_RE = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    ascii_value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    return _SLUG_STRIP_RE.sub("-", ascii_value.lower()).strip("-")


def _associations(session: Session, creation_pivot: Table, draft_pivot: Table, column: str, value: int) -> Dict[str, Any]:
    creations_count = session.execute(
        select(func.count()).select_from(creation_pivot).where(creation_pivot.c[column] == value)
    ).scalar_one()
    drafts_count = session.execute(
        select(func.count()).select_from(draft_pivot).where(draft_pivot.c[column] == value)
    ).scalar_one()
    return {
        "has_associations": bool(creations_count or drafts_count),
        "creations_count": creations_count,
        "creation_drafts_count": drafts_count,
    }


# Tags


@router.get("/tags", response_model=List[TagOut])
async def list_tags(session: Session = Depends(db_session_dependency)) -> List[Dict[str, Any]]:
    rows = session.execute(select(tags_table).order_by(tags_table.c.name)).mappings().all()
    return [dict(row) for row in rows]


def _validate_tag(session: Session, payload: TagIn, tag_id: Optional[int] = None) -> str:
    errors: Dict[str, List[str]] = {}
    check_unique(session, errors, tags_table, "name", payload.name, tag_id)
    slug = slugify(payload.name)
    if not slug:
        errors.setdefault("name", []).append("The name must contain letters or digits.")
    elif "name" not in errors:
        slug_errors: Dict[str, List[str]] = {}
        check_unique(session, slug_errors, tags_table, "slug", slug, tag_id)
        if slug_errors:
            errors["name"] = ["The name has already been taken."]
    if errors:
        raise validation_error(errors)
    return slug


@router.post("/tags", response_model=TagOut, status_code=status.HTTP_201_CREATED)
async def create_tag(payload: TagIn, session: Session = Depends(db_session_dependency)) -> Dict[str, Any]:
    slug = _validate_tag(session, payload)
    row = session.execute(
        insert(tags_table).values(name=payload.name, slug=slug).returning(*tags_table.c)
    ).mappings().one()
    return dict(row)


@router.get("/tags/{tag_id}", response_model=TagOut)
async def show_tag(tag_id: int, session: Session = Depends(db_session_dependency)) -> Dict[str, Any]:
    return fetch_or_404(session, tags_table, tag_id, "Tag not found")


@router.put("/tags/{tag_id}", response_model=TagOut)
async def update_tag(
    tag_id: int,
    payload: TagIn,
    session: Session = Depends(db_session_dependency),
) -> Dict[str, Any]:
    fetch_or_404(session, tags_table, tag_id, "Tag not found")
    slug = _validate_tag(session, payload, tag_id)
    row = session.execute(
        update(tags_table)
        .where(tags_table.c.id == tag_id)
        .values(name=payload.name, slug=slug)
        .returning(*tags_table.c)
    ).mappings().one()
    return dict(row)


@router.delete("/tags/{tag_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tag(tag_id: int, session: Session = Depends(db_session_dependency)) -> None:
    fetch_or_404(session, tags_table, tag_id, "Tag not found")
    session.execute(delete(tags_table).where(tags_table.c.id == tag_id))


@router.get("/tags/{tag_id}/check-associations")
async def tag_associations(tag_id: int, session: Session = Depends(db_session_dependency)) -> Dict[str, Any]:
    fetch_or_404(session, tags_table, tag_id, "Tag not found")
    return _associations(session, creation_tag_table, creation_draft_tag_table, "tag_id", tag_id)


# Technologies


def _technology_out(session: Session, row: Dict[str, Any]) -> Dict[str, Any]:
    description_id = row["description_translation_key_id"]
    icon = serialize_pictures(session, [row["icon_picture_id"]])
    return {
        **row,
        "description": store.texts_for_key(session, description_id) if description_id else {},
        "icon_picture": icon.get(row["icon_picture_id"]),
    }


@router.get("/technologies")
async def list_technologies(
    type: Optional[str] = Query(None),
    session: Session = Depends(db_session_dependency),
) -> List[Dict[str, Any]]:
    stmt = select(technologies_table).order_by(technologies_table.c.name)
    if type:
        stmt = stmt.where(technologies_table.c.type == type)
    rows = session.execute(stmt).mappings().all()
    return [_technology_out(session, dict(row)) for row in rows]


@router.post("/technologies", status_code=status.HTTP_201_CREATED)
async def create_technology(
    payload: TechnologyIn,
    session: Session = Depends(db_session_dependency),
) -> Dict[str, Any]:
    errors: Dict[str, List[str]] = {}
    check_unique(session, errors, technologies_table, "name", payload.name)
    check_exists(session, errors, pictures_table, "icon_picture_id", payload.icon_picture_id)
    if errors:
        raise validation_error(errors)
    description = store.create_or_update(
        session, f"technology.description.{uuid.uuid4().hex}", payload.locale, payload.description
    )
    row = session.execute(
        insert(technologies_table)
        .values(
            name=payload.name,
            type=payload.type.value,
            icon_picture_id=payload.icon_picture_id,
            description_translation_key_id=description["translation_key_id"],
        )
        .returning(*technologies_table.c)
    ).mappings().one()
    return _technology_out(session, dict(row))


@router.get("/technologies/{technology_id}")
async def show_technology(technology_id: int, session: Session = Depends(db_session_dependency)) -> Dict[str, Any]:
    return _technology_out(session, fetch_or_404(session, technologies_table, technology_id, "Technology not found"))


@router.put("/technologies/{technology_id}")
async def update_technology(
    technology_id: int,
    payload: TechnologyUpdate,
    session: Session = Depends(db_session_dependency),
) -> Dict[str, Any]:
    current = fetch_or_404(session, technologies_table, technology_id, "Technology not found")
    errors: Dict[str, List[str]] = {}
    if payload.name is not None and payload.name != current["name"]:
        check_unique(session, errors, technologies_table, "name", payload.name, technology_id)
    check_exists(session, errors, pictures_table, "icon_picture_id", payload.icon_picture_id)
    if errors:
        raise validation_error(errors)

    values: Dict[str, Any] = {}
    if payload.name is not None:
        values["name"] = payload.name
    if payload.type is not None:
        values["type"] = payload.type.value
    if payload.icon_picture_id is not None:
        values["icon_picture_id"] = payload.icon_picture_id
    if payload.description is not None:
        key_id = current["description_translation_key_id"]
        if key_id is None:
            key_id = store.create_key(session, f"technology.description.{uuid.uuid4().hex}")
            values["description_translation_key_id"] = key_id
        store.set_text(session, key_id, payload.locale, payload.description)
    if values:
        session.execute(update(technologies_table).where(technologies_table.c.id == technology_id).values(**values))
    return _technology_out(session, fetch_or_404(session, technologies_table, technology_id, "Technology not found"))


@router.delete("/technologies/{technology_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_technology(technology_id: int, session: Session = Depends(db_session_dependency)) -> None:
    fetch_or_404(session, technologies_table, technology_id, "Technology not found")
    session.execute(delete(technologies_table).where(technologies_table.c.id == technology_id))


@router.get("/technologies/{technology_id}/check-associations")
async def technology_associations(
    technology_id: int,
    session: Session = Depends(db_session_dependency),
) -> Dict[str, Any]:
    fetch_or_404(session, technologies_table, technology_id, "Technology not found")
    return _associations(
        session, creation_technology_table, creation_draft_technology_table, "technology_id", technology_id
    )


# Social media links


@router.get("/social-media-links", response_model=List[SocialMediaLinkOut])
async def list_social_links(session: Session = Depends(db_session_dependency)) -> List[Dict[str, Any]]:
    rows = session.execute(
        select(social_media_links_table).order_by(social_media_links_table.c.id)
    ).mappings().all()
    return [dict(row) for row in rows]


@router.post("/social-media-links", response_model=SocialMediaLinkOut, status_code=status.HTTP_201_CREATED)
async def create_social_link(
    payload: SocialMediaLinkIn,
    session: Session = Depends(db_session_dependency),
) -> Dict[str, Any]:
    row = session.execute(
        insert(social_media_links_table).values(**payload.model_dump()).returning(*social_media_links_table.c)
    ).mappings().one()
    return dict(row)


@router.get("/social-media-links/{link_id}", response_model=SocialMediaLinkOut)
async def show_social_link(link_id: int, session: Session = Depends(db_session_dependency)) -> Dict[str, Any]:
    return fetch_or_404(session, social_media_links_table, link_id, "Social media link not found")


@router.put("/social-media-links/{link_id}", response_model=SocialMediaLinkOut)
async def update_social_link(
    link_id: int,
    payload: SocialMediaLinkIn,
    session: Session = Depends(db_session_dependency),
) -> Dict[str, Any]:
    fetch_or_404(session, social_media_links_table, link_id, "Social media link not found")
    row = session.execute(
        update(social_media_links_table)
        .where(social_media_links_table.c.id == link_id)
        .values(**payload.model_dump())
        .returning(*social_media_links_table.c)
    ).mappings().one()
    return dict(row)


@router.delete("/social-media-links/{link_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_social_link(link_id: int, session: Session = Depends(db_session_dependency)) -> None:
    fetch_or_404(session, social_media_links_table, link_id, "Social media link not found")
    session.execute(delete(social_media_links_table).where(social_media_links_table.c.id == link_id))
    logger.info("Deleted social media link %s", link_id)
