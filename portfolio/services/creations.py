from __future__ import annotations

import logging
from typing import Any, Mapping

from sqlalchemy import Table, delete, insert, select, update
from sqlalchemy.orm import Session

from portfolio.services.pictures import serialize_pictures
from portfolio.services.translation.keys import TranslationKeyDuplicator
from portfolio.services.translation.store import resolve_texts
from portfolio.tables import (
    creation_draft_screenshots_table,
    creation_draft_tag_table,
    creation_draft_technology_table,
    creation_draft_video_table,
    creation_drafts_table,
    creation_tag_table,
    creation_technology_table,
    creation_video_table,
    creations_table,
    screenshots_table,
    tags_table,
    technologies_table,
    utcnow,
    videos_table,
)

logger = logging.getLogger(__name__)

CREATION_FIELDS = (
    "name",
    "slug",
    "logo_id",
    "cover_image_id",
    "type",
    "started_at",
    "ended_at",
    "short_description_translation_key_id",
    "full_description_translation_key_id",
    "external_url",
    "source_code_url",
    "featured",
)
TRANSLATED_FIELDS = (
    "short_description_translation_key_id",
    "full_description_translation_key_id",
)


class DraftPublishError(Exception):
    def __init__(self, errors: dict[str, list[str]]) -> None:
        super().__init__("Draft is not ready to be published")
        self.errors = errors


# relation name -> (draft pivot, creation pivot, target column, target table)
RELATIONS: dict[str, tuple[Table, Table, str, Table]] = {
    "tags": (creation_draft_tag_table, creation_tag_table, "tag_id", tags_table),
    "technologies": (
        creation_draft_technology_table,
        creation_technology_table,
        "technology_id",
        technologies_table,
    ),
    "videos": (creation_draft_video_table, creation_video_table, "video_id", videos_table),
}


def _values(data: Mapping[str, Any]) -> dict[str, Any]:
    values = {field: data[field] for field in CREATION_FIELDS if field in data}
    if "type" in values and hasattr(values["type"], "value"):
        values["type"] = values["type"].value
    return values


def get_draft(session: Session, draft_id: int) -> dict[str, Any] | None:
    row = session.execute(
        select(creation_drafts_table).where(creation_drafts_table.c.id == draft_id)
    ).mappings().one_or_none()
    return dict(row) if row is not None else None


def get_creation(session: Session, creation_id: int) -> dict[str, Any] | None:
    row = session.execute(
        select(creations_table).where(creations_table.c.id == creation_id)
    ).mappings().one_or_none()
    return dict(row) if row is not None else None


def create_draft(session: Session, data: Mapping[str, Any]) -> dict[str, Any]:
    values = _values(data)
    values["original_creation_id"] = data.get("original_creation_id")
    row = session.execute(
        insert(creation_drafts_table).values(**values).returning(*creation_drafts_table.c)
    ).mappings().one()
    return dict(row)


def update_draft(session: Session, draft_id: int, data: Mapping[str, Any]) -> dict[str, Any]:
    values = _values(data)
    if "original_creation_id" in data:
        values["original_creation_id"] = data["original_creation_id"]
    values["updated_at"] = utcnow()
    row = session.execute(
        update(creation_drafts_table)
        .where(creation_drafts_table.c.id == draft_id)
        .values(**values)
        .returning(*creation_drafts_table.c)
    ).mappings().one()
    return dict(row)


def related_ids(session: Session, draft_id: int, relation: str, *, published: bool = False) -> list[int]:
    draft_pivot, creation_pivot, column, _ = RELATIONS[relation]
    pivot = creation_pivot if published else draft_pivot
    owner = "creation_id" if published else "creation_draft_id"
    return list(
        session.execute(
            select(pivot.c[column]).where(pivot.c[owner] == draft_id).order_by(pivot.c[column])
        ).scalars().all()
    )


def related_rows(session: Session, owner_id: int, relation: str, *, published: bool = False) -> list[dict[str, Any]]:
    target = RELATIONS[relation][3]
    ids = related_ids(session, owner_id, relation, published=published)
    if not ids:
        return []
    rows = session.execute(select(target).where(target.c.id.in_(ids)).order_by(target.c.id)).mappings().all()
    return [dict(row) for row in rows]


def attach(session: Session, draft_id: int, relation: str, ids: list[int]) -> list[int]:
    draft_pivot, _, column, _ = RELATIONS[relation]
    current = set(related_ids(session, draft_id, relation))
    new_ids = [target_id for target_id in dict.fromkeys(ids) if target_id not in current]
    if new_ids:
        session.execute(
            insert(draft_pivot),
            [{"creation_draft_id": draft_id, column: target_id} for target_id in new_ids],
        )
    return related_ids(session, draft_id, relation)


def detach(session: Session, draft_id: int, relation: str, ids: list[int]) -> list[int]:
    draft_pivot, _, column, _ = RELATIONS[relation]
    session.execute(
        delete(draft_pivot).where(
            draft_pivot.c.creation_draft_id == draft_id,
            draft_pivot.c[column].in_(ids),
        )
    )
    return related_ids(session, draft_id, relation)


def draft_from_creation(session: Session, creation_id: int) -> dict[str, Any]:
    """Open a draft on a published creation with its own copies of the texts."""
    creation = get_creation(session, creation_id)
    if creation is None:
        raise LookupError(f"Creation {creation_id} not found")
    duplicator = TranslationKeyDuplicator(session)
    values = {field: creation[field] for field in CREATION_FIELDS}
    for field in TRANSLATED_FIELDS:
        values[field] = duplicator.duplicate_optional(creation[field], "draft")
    values["original_creation_id"] = creation_id
    draft = dict(
        session.execute(
            insert(creation_drafts_table).values(**values).returning(*creation_drafts_table.c)
        ).mappings().one()
    )

    screenshots = session.execute(
        select(screenshots_table)
        .where(screenshots_table.c.creation_id == creation_id)
        .order_by(screenshots_table.c.order)
    ).mappings().all()
    for screenshot in screenshots:
        session.execute(
            insert(creation_draft_screenshots_table).values(
                creation_draft_id=draft["id"],
                picture_id=screenshot["picture_id"],
                caption_translation_key_id=duplicator.duplicate_optional(
                    screenshot["caption_translation_key_id"], "draft"
                ),
                order=screenshot["order"],
            )
        )
    for relation, (draft_pivot, _, column, _) in RELATIONS.items():
        ids = related_ids(session, creation_id, relation, published=True)
        if ids:
            session.execute(
                insert(draft_pivot),
                [{"creation_draft_id": draft["id"], column: target_id} for target_id in ids],
            )
    logger.info("Created draft %s from creation %s", draft["id"], creation_id)
    return draft


def publish_errors(draft: Mapping[str, Any]) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}
    if not draft.get("short_description_translation_key_id"):
        errors["short_description"] = ["The short description is required."]
    if not draft.get("logo_id"):
        errors["logo"] = ["The logo is required."]
    if not draft.get("cover_image_id"):
        errors["cover_image"] = ["The cover image is required."]
    return errors


def publish_draft(session: Session, draft_id: int, *, delete_draft: bool = True) -> dict[str, Any]:
    draft = get_draft(session, draft_id)
    if draft is None:
        raise LookupError(f"Draft {draft_id} not found")
    errors = publish_errors(draft)
    if errors:
        raise DraftPublishError(errors)

    values = {field: draft[field] for field in CREATION_FIELDS}
    original_id = draft.get("original_creation_id")
    if original_id is not None and get_creation(session, original_id) is not None:
        values["updated_at"] = utcnow()
        creation = session.execute(
            update(creations_table)
            .where(creations_table.c.id == original_id)
            .values(**values)
            .returning(*creations_table.c)
        ).mappings().one()
        session.execute(delete(screenshots_table).where(screenshots_table.c.creation_id == original_id))
    else:
        creation = session.execute(
            insert(creations_table).values(**values).returning(*creations_table.c)
        ).mappings().one()
    creation = dict(creation)

    draft_screenshots = session.execute(
        select(creation_draft_screenshots_table)
        .where(creation_draft_screenshots_table.c.creation_draft_id == draft_id)
        .order_by(creation_draft_screenshots_table.c.order)
    ).mappings().all()
    if draft_screenshots:
        session.execute(
            insert(screenshots_table),
            [
                {
                    "creation_id": creation["id"],
                    "picture_id": screenshot["picture_id"],
                    "caption_translation_key_id": screenshot["caption_translation_key_id"],
                    "order": screenshot["order"],
                }
                for screenshot in draft_screenshots
            ],
        )

    for relation, (_, creation_pivot, column, _) in RELATIONS.items():
        session.execute(delete(creation_pivot).where(creation_pivot.c.creation_id == creation["id"]))
        ids = related_ids(session, draft_id, relation)
        if ids:
            session.execute(
                insert(creation_pivot),
                [{"creation_id": creation["id"], column: target_id} for target_id in ids],
            )

    if delete_draft:
        session.execute(delete(creation_drafts_table).where(creation_drafts_table.c.id == draft_id))
    logger.info("Published draft %s as creation %s", draft_id, creation["id"])
    return creation


def list_screenshots(session: Session, creation_id: int) -> list[dict[str, Any]]:
    rows = session.execute(
        select(screenshots_table)
        .where(screenshots_table.c.creation_id == creation_id)
        .order_by(screenshots_table.c.order, screenshots_table.c.id)
    ).mappings().all()
    return [dict(row) for row in rows]


def present_creation(
    session: Session,
    creation: Mapping[str, Any],
    locale: str,
    *,
    with_screenshots: bool = False,
) -> dict[str, Any]:
    """Public representation with texts resolved for ``locale``."""
    screenshots = list_screenshots(session, creation["id"]) if with_screenshots else []
    texts = resolve_texts(
        session,
        [creation[field] for field in TRANSLATED_FIELDS]
        + [shot["caption_translation_key_id"] for shot in screenshots],
        locale,
    )
    pictures = serialize_pictures(
        session,
        [creation["logo_id"], creation["cover_image_id"]] + [shot["picture_id"] for shot in screenshots],
    )
    data = {
        "id": creation["id"],
        "name": creation["name"],
        "slug": creation["slug"],
        "type": creation["type"],
        "started_at": creation["started_at"],
        "ended_at": creation["ended_at"],
        "external_url": creation["external_url"],
        "source_code_url": creation["source_code_url"],
        "featured": creation["featured"],
        "logo": pictures.get(creation["logo_id"]),
        "cover_image": pictures.get(creation["cover_image_id"]),
        "short_description": texts.get(creation["short_description_translation_key_id"], ""),
        "full_description": texts.get(creation["full_description_translation_key_id"], ""),
        "tags": related_rows(session, creation["id"], "tags", published=True),
        "technologies": related_rows(session, creation["id"], "technologies", published=True),
    }
    if with_screenshots:
        data["screenshots"] = [
            {
                "id": shot["id"],
                "order": shot["order"],
                "picture": pictures.get(shot["picture_id"]),
                "caption": texts.get(shot["caption_translation_key_id"], ""),
            }
            for shot in screenshots
        ]
        data["videos"] = [
            row
            for row in related_rows(session, creation["id"], "videos", published=True)
            if row["visibility"] == "public"
        ]
    return data
