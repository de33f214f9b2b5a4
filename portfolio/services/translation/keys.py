from __future__ import annotations

import logging
from typing import Any, Mapping

from sqlalchemy.orm import Session

from portfolio.services.translation import store

logger = logging.getLogger(__name__)

DRAFT_SUFFIX = "draft"
COPY_SUFFIX = "copy"


class TranslationKeyGenerator:
    """Builds unused translation key names from an existing key and a suffix."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def generate(self, key: str, suffix: str) -> str:
        base = f"{key}_{suffix}"
        candidate = base
        counter = 1
        while store.key_exists(self.session, candidate):
            candidate = f"{base}_{counter}"
            counter += 1
        return candidate

    def generate_for_draft(self, key: str) -> str:
        return self.generate(key, DRAFT_SUFFIX)

    def generate_for_copy(self, key: str) -> str:
        return self.generate(key, COPY_SUFFIX)


class TranslationKeyDuplicator:
    def __init__(self, session: Session, generator: TranslationKeyGenerator | None = None) -> None:
        self.session = session
        self.generator = generator or TranslationKeyGenerator(session)

    def duplicate(self, translation_key_id: int, suffix: str = COPY_SUFFIX) -> Mapping[str, Any]:
        """Create a fresh key carrying every locale text of ``translation_key_id``."""
        original = store.get_key(self.session, translation_key_id)
        if original is None:
            raise LookupError(f"Translation key {translation_key_id} not found")
        new_key = self.generator.generate(original["key"], suffix)
        new_id = store.create_key(self.session, new_key)
        texts = store.texts_for_key(self.session, translation_key_id)
        for locale, text in texts.items():
            store.create_translation(
                self.session,
                translation_key_id=new_id,
                locale=locale,
                text=text,
            )
        logger.info(
            "Duplicated translation key %s into %s (%s locales)",
            original["key"],
            new_key,
            len(texts),
        )
        return {"id": new_id, "key": new_key}

    def duplicate_for_draft(self, translation_key_id: int) -> Mapping[str, Any]:
        return self.duplicate(translation_key_id, DRAFT_SUFFIX)

    def duplicate_for_copy(self, translation_key_id: int) -> Mapping[str, Any]:
        return self.duplicate(translation_key_id, COPY_SUFFIX)

    def duplicate_optional(self, translation_key_id: int | None, suffix: str) -> int | None:
        if translation_key_id is None:
            return None
        return self.duplicate(translation_key_id, suffix)["id"]
