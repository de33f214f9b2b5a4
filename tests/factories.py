from __future__ import annotations

from datetime import date
from typing import Any

from sqlalchemy import insert
from sqlalchemy.orm import Session

from portfolio.tables import (
    creation_drafts_table,
    creations_table,
    pictures_table,
    screenshots_table,
)


def make_picture(session: Session, filename: str = "shot.png") -> int:
    return session.execute(
        insert(pictures_table)
        .values(filename=filename, path_original=f"uploads/{filename}", width=800, height=600, size=1024)
        .returning(pictures_table.c.id)
    ).scalar_one()


def _creation_values(**overrides: Any) -> dict[str, Any]:
    values = {
        "name": "Portfolio",
        "slug": "portfolio",
        "type": "website",
        "started_at": date(2024, 1, 1),
        "featured": False,
    }
    values.update(overrides)
    return values


def make_draft(session: Session, **overrides: Any) -> int:
    return session.execute(
        insert(creation_drafts_table).values(**_creation_values(**overrides)).returning(creation_drafts_table.c.id)
    ).scalar_one()


def make_creation(session: Session, **overrides: Any) -> int:
    return session.execute(
        insert(creations_table).values(**_creation_values(**overrides)).returning(creations_table.c.id)
    ).scalar_one()


def make_screenshot(session: Session, creation_id: int, picture_id: int, order: int, caption_id: int | None = None) -> int:
    return session.execute(
        insert(screenshots_table)
        .values(creation_id=creation_id, picture_id=picture_id, order=order, caption_translation_key_id=caption_id)
        .returning(screenshots_table.c.id)
    ).scalar_one()
