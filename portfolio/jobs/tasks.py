import asyncio
import logging
from typing import Any, Dict, Optional

from portfolio.database import get_session
from portfolio.jobs.broker import broker
from portfolio.services import enrichment, videos
from portfolio.services.bot_detection.service import BotDetectionService
from portfolio.services.images.optimization import PictureOptimizer
from portfolio.services.translation import store
from portfolio.services.translation.ai_translate import build_translator

logger = logging.getLogger(__name__)


@broker.task(task_name="translate_translation_key")
async def translate_translation_key(
    translation_key_id: int,
    source_locale: str = "fr",
    target_locale: str = "en",
) -> Optional[str]:
    translator = build_translator()
    if translator is None:
        logger.warning(
            "AI translator is not configured, translation key %s stays untranslated",
            translation_key_id,
        )
        return None

    with get_session() as session:
        source_text = store.get_text(session, translation_key_id, source_locale)
        target_text = store.get_text(session, translation_key_id, target_locale)
    if not source_text or not source_text.strip():
        logger.info("Translation key %s has no %s text", translation_key_id, source_locale)
        return None
    if target_text and target_text.strip():
        return target_text

    translated = await asyncio.to_thread(
        translator.translate,
        source_text,
        source_locale,
        target_locale,
        store.placeholders_in(source_text),
    )
    with get_session() as session:
        store.set_text(session, translation_key_id, target_locale, translated)
    logger.info(
        "Translated key %s from %s to %s",
        translation_key_id,
        source_locale,
        target_locale,
    )
    return translated


@broker.task(task_name="analyze_bot_request")
async def analyze_bot_request(request_id: int) -> Optional[Dict[str, Any]]:
    with get_session() as session:
        result = BotDetectionService(session).analyze_request_id(request_id)
    if result is None:
        logger.info("Logged request %s no longer exists", request_id)
    return result


@broker.task(task_name="analyze_bot_requests_batch", schedule=[{"cron": "*/5 * * * *"}])
async def analyze_bot_requests_batch(limit: int = 100) -> int:
    with get_session() as session:
        results = BotDetectionService(session).analyze_unanalyzed_requests(limit)
    logger.info("Analyzed %s pending requests", len(results))
    return len(results)


@broker.task(task_name="reanalyze_bot_requests", schedule=[{"cron": "0 * * * *"}])
async def reanalyze_bot_requests(hours_ago: int = 24, limit: int = 100) -> int:
    with get_session() as session:
        results = BotDetectionService(session).reanalyze_old_requests(hours_ago, limit)
    logger.info("Re-analyzed %s requests older than %sh", len(results), hours_ago)
    return len(results)


@broker.task(task_name="optimize_picture")
async def optimize_picture(picture_id: int) -> int:
    def _run() -> int:
        with get_session() as session:
            return PictureOptimizer(session).optimize(picture_id)

    produced = await asyncio.to_thread(_run)
    logger.info("Produced %s optimized files for picture %s", produced, picture_id)
    return produced


@broker.task(task_name="check_pending_videos", schedule=[{"cron": "*/5 * * * *"}])
async def check_pending_videos() -> Optional[Dict[str, int]]:
    client = videos.build_bunny_client()
    if client is None:
        logger.info("Bunny Stream is not configured, skipping video status check")
        return None

    def _run() -> Dict[str, int]:
        with get_session() as session:
            return videos.check_pending_videos(session, client)

    return await asyncio.to_thread(_run)


@broker.task(task_name="process_ip_addresses", schedule=[{"cron": "*/5 * * * *"}])
async def process_ip_addresses(limit: int = 100) -> int:
    def _run() -> int:
        with get_session() as session:
            return enrichment.process_ip_addresses(session, limit)

    return await asyncio.to_thread(_run)


@broker.task(task_name="process_user_agents", schedule=[{"cron": "0 * * * *"}])
async def process_user_agents(limit: int = 50) -> int:
    translator = build_translator()
    if translator is None:
        logger.info("AI provider is not configured, skipping user agent classification")
        return 0

    def _run() -> int:
        with get_session() as session:
            return enrichment.process_user_agents(session, translator, limit)

    return await asyncio.to_thread(_run)
