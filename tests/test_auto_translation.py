from __future__ import annotations

import pytest

from portfolio.jobs import tasks
from portfolio.services.translation import store
from portfolio.services.translation.auto import AutoTranslationService


class _FakeDispatcher:
    def __init__(self) -> None:
        self.calls: list[tuple[int, str, str]] = []

    async def __call__(self, translation_key_id: int, source_locale: str, target_locale: str) -> None:
        self.calls.append((translation_key_id, source_locale, target_locale))


class _FakeTranslator:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, str, list[str]]] = []

    def translate(self, text: str, source_locale: str, target_locale: str, placeholders=()) -> str:
        self.calls.append((text, source_locale, target_locale, list(placeholders)))
        return f"EN({text})"


@pytest.mark.asyncio
async def test_queues_job_when_english_missing(session) -> None:
    key_id = store.store_texts(session, "home.title", {"fr": "Bonjour"})
    dispatcher = _FakeDispatcher()

    queued = await AutoTranslationService(session, dispatcher).translate_french_to_english_if_missing(key_id)

    assert queued is True
    assert dispatcher.calls == [(key_id, "fr", "en")]


@pytest.mark.asyncio
async def test_blank_english_counts_as_missing(session) -> None:
    key_id = store.store_texts(session, "home.title", {"fr": "Bonjour", "en": "   "})
    dispatcher = _FakeDispatcher()

    assert await AutoTranslationService(session, dispatcher).translate_if_missing(key_id) is True
    assert len(dispatcher.calls) == 1


@pytest.mark.asyncio
async def test_skips_when_english_present(session) -> None:
    key_id = store.store_texts(session, "home.title", {"fr": "Bonjour", "en": "Hello"})
    dispatcher = _FakeDispatcher()

    assert await AutoTranslationService(session, dispatcher).translate_if_missing(key_id) is False
    assert dispatcher.calls == []


@pytest.mark.asyncio
async def test_skips_when_french_missing_or_blank(session) -> None:
    no_french = store.store_texts(session, "home.empty", {"en": ""})
    blank_french = store.store_texts(session, "home.blank", {"fr": "  "})
    dispatcher = _FakeDispatcher()
    service = AutoTranslationService(session, dispatcher)

    assert await service.translate_if_missing(no_french) is False
    assert await service.translate_if_missing(blank_french) is False
    assert dispatcher.calls == []


@pytest.mark.asyncio
async def test_default_dispatcher_queues_translation_task(session, dispatched) -> None:
    key_id = store.store_texts(session, "home.title", {"fr": "Bonjour"})

    assert await AutoTranslationService(session).translate_if_missing(key_id) is True
    assert dispatched == [
        ("translate_translation_key", (key_id,), {"source_locale": "fr", "target_locale": "en"})
    ]


@pytest.mark.asyncio
async def test_translation_task_writes_target_text(monkeypatch) -> None:
    from portfolio.database import get_session

    with get_session() as session:
        key_id = store.store_texts(session, "home.greeting", {"fr": "Bonjour :name"})
    translator = _FakeTranslator()
    monkeypatch.setattr(tasks, "build_translator", lambda: translator)

    result = await tasks.translate_translation_key.original_func(key_id, "fr", "en")

    assert result == "EN(Bonjour :name)"
    assert translator.calls == [("Bonjour :name", "fr", "en", [":name"])]
    with get_session() as session:
        assert store.get_text(session, key_id, "en") == "EN(Bonjour :name)"


@pytest.mark.asyncio
async def test_translation_task_without_provider_is_noop(monkeypatch) -> None:
    monkeypatch.setattr(tasks, "build_translator", lambda: None)
    assert await tasks.translate_translation_key.original_func(1) is None
