from __future__ import annotations

from datetime import datetime

import pytest
from sqlalchemy import insert, select

from portfolio.config import settings
from portfolio.database import get_session
from portfolio.tables import ip_address_metadata_table, logged_requests_table


@pytest.fixture
def logging_enabled(monkeypatch) -> None:
    monkeypatch.setattr(settings, "log_requests", True)


def _logged_rows():
    with get_session() as session:
        return session.execute(select(logged_requests_table).order_by(logged_requests_table.c.id)).mappings().all()


def _log(**values) -> int:
    row = {"method": "GET", "url": "http://testserver/", "path": "/", "ip_address": "198.51.100.1", **values}
    with get_session() as session:
        return session.execute(
            insert(logged_requests_table).values(**row).returning(logged_requests_table.c.id)
        ).scalar_one()


def test_public_request_is_logged_and_analysis_scheduled(client, dispatched, logging_enabled) -> None:
    client.get(
        "/projects?page=1",
        headers={"User-Agent": "TestAgent/1.0", "Referer": "https://example.org", "X-Forwarded-For": "203.0.113.9, 10.0.0.1"},
    )

    rows = _logged_rows()
    assert len(rows) == 1
    row = rows[0]
    assert (row["method"], row["path"], row["status_code"]) == ("GET", "/projects", 200)
    assert row["url"] == "http://testserver/projects?page=1"
    assert row["ip_address"] == "203.0.113.9"
    assert row["user_agent"] == "TestAgent/1.0"
    assert row["referer"] == "https://example.org"
    assert row["user_id"] is None
    assert dispatched == [("analyze_bot_request", (row["id"],), {"delay_seconds": 5})]


def test_excluded_paths_are_not_logged(client, dispatched, logging_enabled) -> None:
    client.get("/health")
    assert _logged_rows() == []
    assert dispatched == []


def test_logging_disabled_by_setting(client, dispatched) -> None:
    client.get("/projects")
    assert _logged_rows() == []


def test_authenticated_request_records_admin(client, auth_headers, logging_enabled) -> None:
    client.get("/dashboard/api/notifications", headers=auth_headers)
    assert _logged_rows()[0]["user_id"] == "admin@example.com"


def test_listing_filters(client, auth_headers) -> None:
    human = _log(url="http://testserver/about", created_at=datetime(2024, 5, 1, 10))
    bot = _log(
        url="http://testserver/wp-login.php",
        ip_address="192.0.2.50",
        is_bot_by_user_agent=True,
        created_at=datetime(2024, 5, 2, 10),
    )
    with get_session() as session:
        session.execute(insert(ip_address_metadata_table).values(ip_address="192.0.2.50", country_code="FR"))

    def ids(**params):
        body = client.get("/dashboard/request-logs", params=params, headers=auth_headers).json()
        return [item["id"] for item in body["logged_requests"]]

    assert ids() == [bot, human]
    assert ids(is_bot="bots") == [bot]
    assert ids(is_bot="humans") == [human]
    assert ids(search="wp-login") == [bot]
    assert ids(include_ips="192.0.2.50") == [bot]
    assert ids(exclude_ips="192.0.2.50, 203.0.113.1") == [human]
    assert ids(date_from="2024-05-02") == [bot]
    assert ids(date_to="2024-05-01") == [human]

    first = client.get("/dashboard/request-logs", params={"is_bot": "bots"}, headers=auth_headers).json()
    assert first["logged_requests"][0]["country_code"] == "FR"
    assert first["logged_requests"][0]["is_bot"] is True
    assert client.get("/dashboard/request-logs", params={"is_bot": "maybe"}, headers=auth_headers).status_code == 422


def test_mark_as_bot(client, auth_headers) -> None:
    request_id = _log()

    response = client.post(
        "/dashboard/request-logs/mark-as-bot", json={"request_ids": [request_id]}, headers=auth_headers
    )

    assert response.json() == {
        "message": "1 request(s) marked as bot",
        "updated_count": 1,
        "requested_ids": [request_id],
    }
    row = _logged_rows()[0]
    assert row["is_bot_by_user_agent"] is True
    assert row["bot_detection_metadata"]["flagged_by"] == "admin@example.com"


def test_mark_as_bot_rejects_unknown_ids(client, auth_headers) -> None:
    request_id = _log()

    response = client.post(
        "/dashboard/request-logs/mark-as-bot", json={"request_ids": [request_id, 404]}, headers=auth_headers
    )

    assert response.status_code == 422
    assert response.json()["detail"] == {"request_ids.1": ["The selected request_ids.1 is invalid."]}
    assert _logged_rows()[0]["is_bot_by_user_agent"] is False
