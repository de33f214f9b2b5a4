from __future__ import annotations

import logging
from typing import Awaitable, Callable

from sqlalchemy.orm import Session

from portfolio.services.translation import store

logger = logging.getLogger(__name__)

TranslationDispatcher = Callable[[int, str, str], Awaitable[None]]


async def queue_translation_job(translation_key_id: int, source_locale: str, target_locale: str) -> None:
    from portfolio.jobs.broker import dispatch
    from portfolio.jobs.tasks import translate_translation_key

    await dispatch(
        translate_translation_key,
        translation_key_id,
        source_locale=source_locale,
        target_locale=target_locale,
    )


class AutoTranslationService:
    """Queues a machine translation when a key has source text but no target text."""

    def __init__(self, session: Session, dispatcher: TranslationDispatcher | None = None) -> None:
        self.session = session
        self.dispatcher = dispatcher or queue_translation_job

    async def translate_if_missing(
        self,
        translation_key_id: int,
        source_locale: str = "fr",
        target_locale: str = "en",
    ) -> bool:
        source_text = store.get_text(self.session, translation_key_id, source_locale)
        if source_text is None or not source_text.strip():
            logger.info(
                "No %s text for translation key %s, skipping auto translation",
                source_locale,
                translation_key_id,
            )
            return False

        target_text = store.get_text(self.session, translation_key_id, target_locale)
        if target_text is not None and target_text.strip():
            return False

        await self.dispatcher(translation_key_id, source_locale, target_locale)
        logger.info(
            "Queued %s -> %s translation for key %s",
            source_locale,
            target_locale,
            translation_key_id,
        )
        return True

    async def translate_french_to_english_if_missing(self, translation_key_id: int) -> bool:
        return await self.translate_if_missing(translation_key_id, "fr", "en")
