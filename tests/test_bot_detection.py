from __future__ import annotations

from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, Query
from sqlalchemy import insert, select

from portfolio.services.bot_detection.service import (
    MANUAL_FLAG_REASON,
    BotDetectionService,
    is_random_parameter,
    mark_as_bot,
    shannon_entropy,
)
from portfolio.services.bot_detection.whitelist import COMMON_PARAMETERS, RouteParameterWhitelist
from portfolio.tables import ip_address_metadata_table, logged_requests_table

CHROME = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
GOOGLEBOT = "Googlebot/2.1 (+http://www.google.com/bot.html)"
NOW = datetime(2024, 5, 1, 12, 0, 0)


def _service(session) -> BotDetectionService:
    return BotDetectionService(
        session,
        whitelist=RouteParameterWhitelist({"/projects/{slug}": ["preview"]}),
        suspicious_referers=["semalt", "buttons-for-website"],
        clock=lambda: NOW,
    )


def _log(session, **values) -> int:
    row = {
        "method": "GET",
        "url": "http://testserver/",
        "path": "/",
        "ip_address": "203.0.113.7",
        "user_agent": CHROME,
        "created_at": NOW,
        **values,
    }
    return session.execute(insert(logged_requests_table).values(**row).returning(logged_requests_table.c.id)).scalar_one()


def _stored(session, request_id: int):
    return session.execute(
        select(logged_requests_table).where(logged_requests_table.c.id == request_id)
    ).mappings().one()


def test_entropy_and_random_parameters() -> None:
    assert shannon_entropy("") == 0.0
    assert shannon_entropy("aaaa") == 0.0
    assert shannon_entropy("ab") == 1.0
    assert is_random_parameter("ref", "a" * 40) is True
    assert is_random_parameter("ref", "1712345678") is True
    assert is_random_parameter("debug_mode", "1") is True
    assert is_random_parameter("color", "blue") is False


def test_regular_visitor_is_not_a_bot(session) -> None:
    request_id = _log(session, url="http://testserver/projects?page=2", path="/projects")

    result = _service(session).analyze_request_id(request_id)

    assert result == {"is_bot": False, "reasons": []}
    stored = _stored(session, request_id)
    assert stored["bot_analyzed_at"] == NOW
    assert stored["is_bot_by_user_agent"] is False


def test_known_crawler_user_agent(session) -> None:
    request_id = _log(session, user_agent=GOOGLEBOT)

    result = _service(session).analyze_request_id(request_id)

    assert result["is_bot"] is True
    assert result["reasons"][0].startswith("Known bot detected")
    assert _stored(session, request_id)["is_bot_by_user_agent"] is True


def test_suspicious_referer_counts_as_user_agent_signal(session) -> None:
    request_id = _log(session, referer="https://semalt.example/offer")

    result = _service(session).analyze_request_id(request_id)

    assert result["reasons"] == ['Suspicious referer detected: contains "semalt"']
    assert _stored(session, request_id)["is_bot_by_user_agent"] is True


def test_random_unexpected_parameter(session) -> None:
    request_id = _log(
        session,
        url="http://testserver/projects?zx=a8f3k2m9q1w7e5r4t6y8u0i2o4p6a8s0d2",
        path="/projects",
    )

    result = _service(session).analyze_request_id(request_id)

    assert result["is_bot"] is True
    assert result["reasons"] == ["Suspicious URL parameters detected: zx"]
    assert _stored(session, request_id)["is_bot_by_parameters"] is True


def test_whitelisted_parameters_are_ignored(session) -> None:
    service = _service(session)
    assert service.analyze_url_parameters("/projects/site?preview=a8f3k2m9q1w7e5r4t6y8u0i2o4p6a8s0d2") == {
        "is_suspicious": False
    }
    assert service.analyze_url_parameters("/?token=a8f3k2m9q1w7e5r4t6y8u0i2o4p6a8s0d2") == {
        "is_suspicious": False
    }


def test_high_frequency_ip(session) -> None:
    ids = [_log(session, created_at=NOW - timedelta(seconds=5 - offset)) for offset in range(6)]

    result = _service(session).analyze_request_id(ids[-1])

    assert result["is_bot"] is True
    assert result["reasons"][0].startswith("High request frequency: 60.0 requests/minute")
    metadata = session.execute(
        select(ip_address_metadata_table).where(ip_address_metadata_table.c.ip_address == "203.0.113.7")
    ).mappings().one()
    assert metadata["avg_request_interval"] == 1.0


def test_too_few_requests_skip_frequency(session) -> None:
    ids = [_log(session, created_at=NOW - timedelta(seconds=2 - offset)) for offset in range(3)]
    frequency = _service(session).analyze_frequency(_stored(session, ids[-1]))
    assert frequency["is_suspicious"] is False
    assert frequency["requests_count"] == 3


def test_authenticated_requests_are_skipped(session) -> None:
    request_id = _log(session, user_agent=GOOGLEBOT, user_id="admin@example.com")

    result = _service(session).analyze_request_id(request_id)

    assert result["is_bot"] is False
    assert result["skip_reason"] == "Authenticated user"
    assert _stored(session, request_id)["bot_detection_metadata"] == {
        "skipped": True,
        "reason": "Authenticated user",
    }


def test_manual_flag_is_kept(session) -> None:
    request_id = _log(session)
    assert mark_as_bot(session, [request_id], flagged_by="admin@example.com") == 1

    result = _service(session).analyze_request_id(request_id)

    assert result["is_bot"] is True
    assert result["reasons"] == [MANUAL_FLAG_REASON]
    stored = _stored(session, request_id)
    assert stored["is_bot_by_user_agent"] is True
    assert stored["bot_detection_metadata"]["manually_flagged"] is True
    assert stored["bot_analyzed_at"] is None


def test_unknown_request_returns_none(session) -> None:
    assert _service(session).analyze_request_id(999) is None


def test_batch_analysis_picks_unanalyzed_anonymous_requests(session) -> None:
    anonymous = _log(session)
    _log(session, user_id="admin@example.com")

    results = _service(session).analyze_unanalyzed_requests()

    assert [item["request_id"] for item in results] == [anonymous]


def test_whitelist_from_routes_merges_overrides() -> None:
    router = APIRouter()

    def paging(cursor: str | None = None, size: int = 20):
        return cursor, size

    @router.get("/projects")
    def projects(featured: bool = Query(False)):
        return []

    @router.get("/projects/{slug}")
    def project(slug: str, tab: str | None = None, window=Depends(paging)):
        return {}

    whitelist = RouteParameterWhitelist.from_routes(router.routes)

    assert "featured" in whitelist.parameters_for("/projects")
    assert "tab" in whitelist.parameters_for("/projects/my-site")
    assert {"cursor", "size"} <= set(whitelist.parameters_for("/projects/my-site"))
    assert "with_drafts" in whitelist.parameters_for("/dashboard/api/creations")
    assert whitelist.parameters_for("/unknown") == list(COMMON_PARAMETERS)
