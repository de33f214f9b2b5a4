from __future__ import annotations

import asyncio
import time
from types import SimpleNamespace

import pytest
from sqlalchemy import insert, select

from portfolio.database import get_session
from portfolio.jobs import tasks
from portfolio.jobs.broker import broker, dispatch_later
from portfolio.services.translation.ai_translate import AIResponseError, AITranslator
from portfolio.tables import logged_requests_table


class _Completions:
    def __init__(self, answer: str) -> None:
        self.answer = answer
        self.requests: list[dict] = []

    def create(self, **kwargs):
        self.requests.append(kwargs)
        message = SimpleNamespace(content=self.answer)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _translator(answer: str) -> tuple[AITranslator, _Completions]:
    translator = AITranslator(base_url="http://ai.test/v1", api_key="key", model="test-model")
    completions = _Completions(answer)
    translator.client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return translator, completions


def test_translator_reads_fenced_json_and_strips_thinking() -> None:
    translator, completions = _translator('<think>hmm</think>```json\n{"message": " Hello :name "}\n```')

    assert translator.translate("Bonjour :name", "fr", "en", [":name"]) == "Hello :name"
    prompt = completions.requests[0]["messages"][1]["content"]
    assert prompt.startswith("Placeholders to preserve: :name. ")
    assert prompt.endswith("Translate this French text to English: Bonjour :name")


def test_translator_rejects_bad_payloads() -> None:
    with pytest.raises(AIResponseError):
        _translator("not json")[0].translate("Bonjour", "fr", "en")
    with pytest.raises(AIResponseError):
        _translator('{"text": "Hello"}')[0].translate("Bonjour", "fr", "en")


@pytest.mark.asyncio
async def test_analyze_bot_request_task() -> None:
    with get_session() as session:
        request_id = session.execute(
            insert(logged_requests_table)
            .values(method="GET", url="http://testserver/", path="/", user_agent="Googlebot/2.1 (+http://www.google.com/bot.html)")
            .returning(logged_requests_table.c.id)
        ).scalar_one()

    result = await tasks.analyze_bot_request.original_func(request_id)

    assert result["is_bot"] is True
    with get_session() as session:
        analyzed_at = session.execute(
            select(logged_requests_table.c.bot_analyzed_at).where(logged_requests_table.c.id == request_id)
        ).scalar_one()
    assert analyzed_at is not None
    assert await tasks.analyze_bot_request.original_func(9999) is None


@pytest.mark.asyncio
async def test_batch_analysis_task_counts_requests() -> None:
    with get_session() as session:
        for path in ("/", "/projects"):
            session.execute(
                insert(logged_requests_table).values(method="GET", url=f"http://testserver{path}", path=path)
            )

    assert await tasks.analyze_bot_requests_batch.original_func() == 2
    assert await tasks.analyze_bot_requests_batch.original_func() == 0


@pytest.mark.asyncio
async def test_optional_providers_skip_quietly(monkeypatch) -> None:
    monkeypatch.setattr(tasks, "build_translator", lambda: None)
    monkeypatch.setattr(tasks.videos, "build_bunny_client", lambda: None)

    assert await tasks.process_user_agents.original_func() == 0
    assert await tasks.check_pending_videos.original_func() is None


def test_scheduled_tasks_carry_cron_labels() -> None:
    assert tasks.analyze_bot_requests_batch.labels["schedule"] == [{"cron": "*/5 * * * *"}]
    assert tasks.reanalyze_bot_requests.labels["schedule"] == [{"cron": "0 * * * *"}]
    assert tasks.process_ip_addresses.labels["schedule"] == [{"cron": "*/5 * * * *"}]


_fired: list[tuple[str, float]] = []


@broker.task(task_name="tests.record_fired")
async def _record_fired(label: str) -> None:
    _fired.append((label, time.monotonic()))


@pytest.mark.asyncio
async def test_dispatch_later_waits_for_the_delay() -> None:
    _fired.clear()
    await broker.startup()
    try:
        started = time.monotonic()
        await dispatch_later(_record_fired, 0.2, "late")
        assert _fired == []
        for _ in range(40):
            if _fired:
                break
            await asyncio.sleep(0.05)
    finally:
        await broker.shutdown()

    assert [label for label, _ in _fired] == ["late"]
    assert _fired[0][1] - started >= 0.19
