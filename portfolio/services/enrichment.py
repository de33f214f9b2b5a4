"""Background enrichment of logged request metadata (IP geolocation, user agent checks)."""
from __future__ import annotations

import logging
from typing import Any, Protocol

import requests
from sqlalchemy import insert, select, update
from sqlalchemy.orm import Session

from portfolio.config import settings
from portfolio.tables import ip_address_metadata_table, logged_requests_table, user_agent_metadata_table

logger = logging.getLogger(__name__)

USER_AGENT_SYSTEM_PROMPT = "You are a robot detector designed to output JSON. "
USER_AGENT_PROMPT = (
    "Is this user agent a robot or a tool that is not a web browser? "
    "Please respond in the format {'is_bot': true/false}. The user agent is: %s"
)


class JsonPrompter(Protocol):
    def prompt_json(self, system: str, prompt: str) -> dict[str, Any]: ...


class IpResolverRejected(RuntimeError):
    pass


def resolve_ip_addresses(ip_addresses: list[str]) -> list[dict[str, Any]]:
    """Look up geolocation for a batch of addresses.

    Only a 422 answer raises; transport and server errors are logged and
    produce an empty result.
    """
    batch = ip_addresses[: settings.ip_resolver_max_per_call]
    if not batch:
        return []
    url = f"{settings.ip_resolver_url}?fields=status,message,countryCode,lat,lon,query"
    try:
        response = requests.post(url, json=batch, timeout=15)
    except requests.RequestException as exc:
        logger.info("IP resolver unreachable, skipping metadata resolution: %s", exc)
        return []
    if response.status_code == 422:
        logger.error("IP resolver rejected the request: %s", response.text)
        raise IpResolverRejected(f"IP resolver rejected the request: {response.text}")
    if response.status_code >= 500:
        logger.info("IP resolver server error %s, skipping metadata resolution", response.status_code)
        return []
    if not response.ok:
        logger.error("IP resolver returned unexpected status %s", response.status_code)
        return []
    payload = response.json()
    return payload if isinstance(payload, list) else []


def process_ip_addresses(session: Session, limit: int = 100) -> int:
    known = select(ip_address_metadata_table.c.ip_address).where(
        ip_address_metadata_table.c.country_code.is_not(None)
    )
    pending = session.execute(
        select(logged_requests_table.c.ip_address)
        .where(logged_requests_table.c.ip_address.is_not(None))
        .where(logged_requests_table.c.ip_address.not_in(known))
        .distinct()
        .limit(limit)
    ).scalars().all()
    if not pending:
        return 0
    resolved = 0
    for entry in resolve_ip_addresses(list(pending)):
        if entry.get("status") != "success" or not entry.get("query"):
            continue
        values = {
            "country_code": entry.get("countryCode"),
            "lat": entry.get("lat"),
            "lon": entry.get("lon"),
        }
        existing = session.execute(
            select(ip_address_metadata_table.c.ip_address).where(
                ip_address_metadata_table.c.ip_address == entry["query"]
            )
        ).scalar_one_or_none()
        if existing is None:
            session.execute(
                insert(ip_address_metadata_table).values(ip_address=entry["query"], **values)
            )
        else:
            session.execute(
                update(ip_address_metadata_table)
                .where(ip_address_metadata_table.c.ip_address == entry["query"])
                .values(**values)
            )
        resolved += 1
    logger.info("Resolved metadata for %s/%s IP addresses", resolved, len(pending))
    return resolved


def classify_user_agent(session: Session, prompter: JsonPrompter, user_agent: str) -> bool | None:
    try:
        response = prompter.prompt_json(USER_AGENT_SYSTEM_PROMPT, USER_AGENT_PROMPT % user_agent)
    except Exception:
        logger.exception("User agent classification failed for %r", user_agent)
        return None
    is_bot = bool(response.get("is_bot", False))
    session.execute(insert(user_agent_metadata_table).values(user_agent=user_agent, is_bot=is_bot))
    return is_bot


def process_user_agents(session: Session, prompter: JsonPrompter, limit: int = 50) -> int:
    known = select(user_agent_metadata_table.c.user_agent)
    pending = session.execute(
        select(logged_requests_table.c.user_agent)
        .where(logged_requests_table.c.user_agent.is_not(None))
        .where(logged_requests_table.c.user_agent.not_in(known))
        .distinct()
        .limit(limit)
    ).scalars().all()
    processed = 0
    for user_agent in pending:
        if classify_user_agent(session, prompter, user_agent) is not None:
            processed += 1
    return processed
