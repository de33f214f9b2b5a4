from __future__ import annotations

import logging
import uuid
from pathlib import Path, PurePosixPath
from typing import Any, Mapping

from sqlalchemy import delete, insert, select, update
from sqlalchemy.orm import Session

from portfolio.config import settings
from portfolio.services.images.drivers import read_dimensions
from portfolio.tables import optimized_pictures_table, pictures_table

logger = logging.getLogger(__name__)

UPLOAD_DIR = "uploads"


def storage_root() -> Path:
    return Path(settings.storage_path)


def storage_path(relative: str) -> Path:
    return storage_root() / relative


def _safe_suffix(filename: str) -> str:
    suffix = PurePosixPath(filename or "").suffix.lower()
    return suffix if suffix and len(suffix) <= 6 and suffix[1:].isalnum() else ""


def store_picture(session: Session, filename: str, content: bytes) -> dict[str, Any]:
    relative = f"{UPLOAD_DIR}/{uuid.uuid4().hex}{_safe_suffix(filename)}"
    target = storage_path(relative)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(content)
    size = read_dimensions(content)
    row = session.execute(
        insert(pictures_table)
        .values(
            filename=filename or target.name,
            path_original=relative,
            width=size[0] if size else None,
            height=size[1] if size else None,
            size=len(content),
        )
        .returning(*pictures_table.c)
    ).mappings().one()
    logger.info("Stored picture id=%s path=%s size=%s", row["id"], relative, len(content))
    return dict(row)


def get_picture(session: Session, picture_id: int) -> dict[str, Any] | None:
    row = session.execute(
        select(pictures_table).where(pictures_table.c.id == picture_id)
    ).mappings().one_or_none()
    return dict(row) if row is not None else None


def optimized_variants(session: Session, picture_ids: list[int]) -> dict[int, list[dict[str, Any]]]:
    if not picture_ids:
        return {}
    rows = session.execute(
        select(optimized_pictures_table).where(optimized_pictures_table.c.picture_id.in_(picture_ids))
    ).mappings().all()
    grouped: dict[int, list[dict[str, Any]]] = {}
    for row in rows:
        grouped.setdefault(row["picture_id"], []).append(dict(row))
    return grouped


def serialize_pictures(session: Session, picture_ids: list[int | None]) -> dict[int, dict[str, Any]]:
    ids = sorted({picture_id for picture_id in picture_ids if picture_id is not None})
    if not ids:
        return {}
    rows = session.execute(
        select(pictures_table).where(pictures_table.c.id.in_(ids))
    ).mappings().all()
    variants = optimized_variants(session, ids)
    return {
        row["id"]: {
            **dict(row),
            "optimized_pictures": variants.get(row["id"], []),
        }
        for row in rows
    }


def replace_optimized(
    session: Session, picture_id: int, variants: list[Mapping[str, str]]
) -> None:
    session.execute(
        delete(optimized_pictures_table).where(optimized_pictures_table.c.picture_id == picture_id)
    )
    if variants:
        session.execute(
            insert(optimized_pictures_table),
            [{"picture_id": picture_id, **variant} for variant in variants],
        )


def update_dimensions(session: Session, picture_id: int, width: int, height: int) -> None:
    session.execute(
        update(pictures_table)
        .where(pictures_table.c.id == picture_id)
        .values(width=width, height=height)
    )


def delete_picture(session: Session, picture_id: int) -> bool:
    picture = get_picture(session, picture_id)
    if picture is None:
        return False
    paths = [picture["path_original"]]
    paths += [
        variant["path"]
        for variant in optimized_variants(session, [picture_id]).get(picture_id, [])
    ]
    session.execute(
        delete(optimized_pictures_table).where(optimized_pictures_table.c.picture_id == picture_id)
    )
    session.execute(delete(pictures_table).where(pictures_table.c.id == picture_id))
    for relative in paths:
        try:
            storage_path(relative).unlink(missing_ok=True)
        except OSError:
            logger.warning("Could not remove picture file %s", relative)
    return True
