"""Draft screenshot ordering.

A draft's screenshots carry an ``order`` column that must stay a dense
``1..N`` sequence. Reorder payloads are validated in two passes: per-field
rules first (all errors accumulated), then cross-row checks that stop at the
first violated rule.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Collection, Mapping

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.orm import Session

from portfolio.tables import creation_draft_screenshots_table

logger = logging.getLogger(__name__)

FIELD = "screenshots"

MSG_NOT_IN_DRAFT = "All screenshots must belong to the creation draft."
MSG_INCOMPLETE = "All screenshots must be included in the reorder request."
MSG_NOT_CONTIGUOUS = "Order values must form a continuous sequence starting from 1."
MSG_DUPLICATE_IDS = "Duplicate screenshot IDs are not allowed."
MSG_DUPLICATE_ORDERS = "Duplicate order values are not allowed."


@dataclass(frozen=True, slots=True)
class ReorderItem:
    id: int
    order: int


class ReorderValidationError(Exception):
    def __init__(self, errors: dict[str, list[str]]) -> None:
        super().__init__("Invalid screenshot reorder payload")
        self.errors = errors


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def _check_fields(
    payload: Any, existing_ids: Collection[int]
) -> tuple[list[ReorderItem], dict[str, list[str]]]:
    errors: dict[str, list[str]] = {}

    def _add(field: str, message: str) -> None:
        errors.setdefault(field, []).append(message)

    raw = payload.get(FIELD) if isinstance(payload, Mapping) else None
    if raw is None or (isinstance(raw, list) and not raw):
        _add(FIELD, "The screenshots field is required.")
        return [], errors
    if not isinstance(raw, list):
        _add(FIELD, "The screenshots field must be an array.")
        return [], errors

    items: list[ReorderItem] = []
    for index, entry in enumerate(raw):
        entry = entry if isinstance(entry, Mapping) else {}
        id_field = f"{FIELD}.{index}.id"
        order_field = f"{FIELD}.{index}.order"

        screenshot_id = _as_int(entry.get("id"))
        if entry.get("id") is None:
            _add(id_field, f"The {id_field} field is required.")
        elif screenshot_id is None:
            _add(id_field, f"The {id_field} field must be an integer.")
        elif screenshot_id not in existing_ids:
            _add(id_field, f"The selected {id_field} is invalid.")

        order = _as_int(entry.get("order"))
        if entry.get("order") is None:
            _add(order_field, f"The {order_field} field is required.")
        elif order is None:
            _add(order_field, f"The {order_field} field must be an integer.")
        elif order < 1:
            _add(order_field, f"The {order_field} field must be at least 1.")

        if screenshot_id is not None and order is not None:
            items.append(ReorderItem(id=screenshot_id, order=order))
    return items, errors


def _check_rows(items: list[ReorderItem], draft_screenshot_ids: Collection[int]) -> str | None:
    draft_ids = set(draft_screenshot_ids)
    submitted_ids = [item.id for item in items]
    orders = [item.order for item in items]

    if any(screenshot_id not in draft_ids for screenshot_id in submitted_ids):
        return MSG_NOT_IN_DRAFT
    if len(set(submitted_ids)) != len(submitted_ids):
        return MSG_DUPLICATE_IDS
    if len(submitted_ids) != len(draft_ids):
        return MSG_INCOMPLETE
    if len(set(orders)) != len(orders):
        return MSG_DUPLICATE_ORDERS
    if sorted(orders) != list(range(1, len(draft_ids) + 1)):
        return MSG_NOT_CONTIGUOUS
    return None


def validate_reorder(
    payload: Any,
    draft_screenshot_ids: Collection[int],
    existing_ids: Collection[int] | None = None,
) -> tuple[list[ReorderItem], dict[str, list[str]]]:
    """Return the parsed items and a field-keyed error map (empty when valid).

    ``existing_ids`` is the set of screenshot ids known anywhere; it defaults to
    the draft's own ids.
    """
    known = set(existing_ids) if existing_ids is not None else set(draft_screenshot_ids)
    items, errors = _check_fields(payload, known)
    if errors:
        return items, errors
    message = _check_rows(items, draft_screenshot_ids)
    if message is not None:
        return items, {FIELD: [message]}
    return items, {}


def list_draft_screenshots(session: Session, draft_id: int) -> list[dict[str, Any]]:
    rows = session.execute(
        select(creation_draft_screenshots_table)
        .where(creation_draft_screenshots_table.c.creation_draft_id == draft_id)
        .order_by(creation_draft_screenshots_table.c.order, creation_draft_screenshots_table.c.id)
    ).mappings().all()
    return [dict(row) for row in rows]


def reorder_draft_screenshots(session: Session, draft_id: int, payload: Any) -> list[dict[str, Any]]:
    draft_ids = session.execute(
        select(creation_draft_screenshots_table.c.id).where(
            creation_draft_screenshots_table.c.creation_draft_id == draft_id
        )
    ).scalars().all()
    submitted = []
    if isinstance(payload, Mapping) and isinstance(payload.get(FIELD), list):
        submitted = [
            value
            for value in (
                _as_int(entry.get("id")) for entry in payload[FIELD] if isinstance(entry, Mapping)
            )
            if value is not None
        ]
    existing_ids = set(
        session.execute(
            select(creation_draft_screenshots_table.c.id).where(
                creation_draft_screenshots_table.c.id.in_(submitted)
            )
        ).scalars().all()
    ) if submitted else set()

    items, errors = validate_reorder(payload, draft_ids, existing_ids)
    if errors:
        raise ReorderValidationError(errors)

    for item in items:
        session.execute(
            update(creation_draft_screenshots_table)
            .where(creation_draft_screenshots_table.c.id == item.id)
            .values(order=item.order)
        )
    logger.info("Reordered %s screenshots of draft %s", len(items), draft_id)
    return list_draft_screenshots(session, draft_id)


def next_order(session: Session, draft_id: int) -> int:
    current = session.execute(
        select(func.max(creation_draft_screenshots_table.c.order)).where(
            creation_draft_screenshots_table.c.creation_draft_id == draft_id
        )
    ).scalar_one_or_none()
    return (current or 0) + 1


def add_draft_screenshot(
    session: Session,
    draft_id: int,
    *,
    picture_id: int,
    caption_translation_key_id: int | None = None,
    order: int | None = None,
) -> dict[str, Any]:
    row = session.execute(
        insert(creation_draft_screenshots_table)
        .values(
            creation_draft_id=draft_id,
            picture_id=picture_id,
            caption_translation_key_id=caption_translation_key_id,
            order=order if order is not None else next_order(session, draft_id),
        )
        .returning(*creation_draft_screenshots_table.c)
    ).mappings().one()
    return dict(row)


def compact_orders(session: Session, draft_id: int) -> None:
    """Rewrite the draft's orders as 1..N keeping their relative sequence."""
    for position, row in enumerate(list_draft_screenshots(session, draft_id), start=1):
        if row["order"] != position:
            session.execute(
                update(creation_draft_screenshots_table)
                .where(creation_draft_screenshots_table.c.id == row["id"])
                .values(order=position)
            )


def remove_draft_screenshot(session: Session, screenshot_id: int) -> bool:
    draft_id = session.execute(
        select(creation_draft_screenshots_table.c.creation_draft_id).where(
            creation_draft_screenshots_table.c.id == screenshot_id
        )
    ).scalar_one_or_none()
    if draft_id is None:
        return False
    session.execute(
        delete(creation_draft_screenshots_table).where(
            creation_draft_screenshots_table.c.id == screenshot_id
        )
    )
    compact_orders(session, draft_id)
    return True
