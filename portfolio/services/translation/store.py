from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Mapping

from sqlalchemy import and_, insert, select, update
from sqlalchemy.orm import Session

from portfolio.config import settings
from portfolio.tables import translation_keys_table, translations_table

logger = logging.getLogger(__name__)

PLACEHOLDER_RE = re.compile(r":([A-Za-z_][A-Za-z0-9_]*)")


class TranslationExistsError(Exception):
    def __init__(self, translation_key_id: int, locale: str) -> None:
        super().__init__(
            f"Translation for key {translation_key_id} and locale '{locale}' already exists"
        )
        self.translation_key_id = translation_key_id
        self.locale = locale


def normalize_locale(locale: str | None) -> str:
    return (locale or "").strip().lower()


def is_supported_locale(locale: str | None) -> bool:
    return normalize_locale(locale) in settings.locales


def fallback_locale(locale: str) -> str:
    """The other configured locale, used when a text is missing for display."""
    for candidate in settings.locales:
        if candidate != locale:
            return candidate
    return locale


def find_key(session: Session, key: str) -> Mapping[str, Any] | None:
    return session.execute(
        select(translation_keys_table).where(translation_keys_table.c.key == key)
    ).mappings().one_or_none()


def get_key(session: Session, translation_key_id: int) -> Mapping[str, Any] | None:
    return session.execute(
        select(translation_keys_table).where(translation_keys_table.c.id == translation_key_id)
    ).mappings().one_or_none()


def key_exists(session: Session, key: str) -> bool:
    return session.execute(
        select(translation_keys_table.c.id).where(translation_keys_table.c.key == key)
    ).first() is not None


def create_key(session: Session, key: str) -> int:
    return session.execute(
        insert(translation_keys_table)
        .values(key=key)
        .returning(translation_keys_table.c.id)
    ).scalar_one()


def ensure_key(session: Session, key: str) -> int:
    existing = session.execute(
        select(translation_keys_table.c.id).where(translation_keys_table.c.key == key)
    ).scalar_one_or_none()
    if existing is not None:
        return existing
    return create_key(session, key)


def find_translation(
    session: Session, translation_key_id: int, locale: str
) -> Mapping[str, Any] | None:
    return session.execute(
        select(translations_table).where(
            and_(
                translations_table.c.translation_key_id == translation_key_id,
                translations_table.c.locale == locale,
            )
        )
    ).mappings().one_or_none()


def find_by_key_and_locale(session: Session, key: str, locale: str) -> Mapping[str, Any] | None:
    return session.execute(
        select(translations_table)
        .join(
            translation_keys_table,
            translation_keys_table.c.id == translations_table.c.translation_key_id,
        )
        .where(
            and_(
                translation_keys_table.c.key == key,
                translations_table.c.locale == normalize_locale(locale),
            )
        )
    ).mappings().one_or_none()


def get_text(session: Session, translation_key_id: int, locale: str) -> str | None:
    return session.execute(
        select(translations_table.c.text).where(
            and_(
                translations_table.c.translation_key_id == translation_key_id,
                translations_table.c.locale == locale,
            )
        )
    ).scalar_one_or_none()


def texts_for_key(session: Session, translation_key_id: int) -> dict[str, str]:
    rows = session.execute(
        select(translations_table.c.locale, translations_table.c.text).where(
            translations_table.c.translation_key_id == translation_key_id
        )
    ).all()
    return {locale: text for locale, text in rows}


def create_translation(
    session: Session, *, translation_key_id: int, locale: str, text: str
) -> Mapping[str, Any]:
    locale = normalize_locale(locale)
    if find_translation(session, translation_key_id, locale) is not None:
        raise TranslationExistsError(translation_key_id, locale)
    return session.execute(
        insert(translations_table)
        .values(translation_key_id=translation_key_id, locale=locale, text=text)
        .returning(*translations_table.c)
    ).mappings().one()


def set_text(
    session: Session, translation_key_id: int, locale: str, text: str
) -> Mapping[str, Any]:
    locale = normalize_locale(locale)
    existing = find_translation(session, translation_key_id, locale)
    if existing is None:
        return session.execute(
            insert(translations_table)
            .values(translation_key_id=translation_key_id, locale=locale, text=text)
            .returning(*translations_table.c)
        ).mappings().one()
    return session.execute(
        update(translations_table)
        .where(translations_table.c.id == existing["id"])
        .values(text=text)
        .returning(*translations_table.c)
    ).mappings().one()


def create_or_update(session: Session, key: str, locale: str, text: str) -> Mapping[str, Any]:
    """Upsert the text of ``key`` for ``locale``, creating the key when needed."""
    return set_text(session, ensure_key(session, key), locale, text)


def store_texts(session: Session, key: str, texts: Mapping[str, str | None]) -> int:
    translation_key_id = ensure_key(session, key)
    for locale, text in texts.items():
        if text is None:
            continue
        set_text(session, translation_key_id, locale, text)
    return translation_key_id


def replace_placeholders(text: str, replacements: Mapping[str, Any] | None = None) -> str:
    if not replacements:
        return text

    def _substitute(match: re.Match) -> str:
        name = match.group(1)
        if name in replacements:
            return str(replacements[name])
        return match.group(0)

    return PLACEHOLDER_RE.sub(_substitute, text)


def placeholders_in(text: str) -> list[str]:
    return [f":{name}" for name in PLACEHOLDER_RE.findall(text or "")]


def trans(
    session: Session,
    key: str,
    locale: str,
    replacements: Mapping[str, Any] | None = None,
) -> str:
    translation = find_by_key_and_locale(session, key, locale)
    if translation is None:
        return key
    return replace_placeholders(translation["text"], replacements)


def resolve_texts(
    session: Session, translation_key_ids: Iterable[int | None], locale: str
) -> dict[int, str]:
    """Display texts for many keys, falling back to the other locale when blank."""
    ids = {key_id for key_id in translation_key_ids if key_id is not None}
    if not ids:
        return {}
    rows = session.execute(
        select(
            translations_table.c.translation_key_id,
            translations_table.c.locale,
            translations_table.c.text,
        ).where(translations_table.c.translation_key_id.in_(ids))
    ).all()
    by_key: dict[int, dict[str, str]] = {}
    for key_id, row_locale, text in rows:
        by_key.setdefault(key_id, {})[row_locale] = text
    other = fallback_locale(locale)
    resolved: dict[int, str] = {}
    for key_id in ids:
        texts = by_key.get(key_id, {})
        text = texts.get(locale) or texts.get(other) or ""
        resolved[key_id] = text
    return resolved


def resolve_text(session: Session, translation_key_id: int | None, locale: str) -> str:
    if translation_key_id is None:
        return ""
    return resolve_texts(session, [translation_key_id], locale).get(translation_key_id, "")
