"""Heuristic bot detection over logged requests.

Each request is scored on four independent signals (request frequency of its
IP, user agent, referer and unexpected query parameters). The verdicts are
stored on the ``logged_requests`` row so the dashboard can filter on them.
"""
from __future__ import annotations

import json
import logging
import math
import re
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Mapping
from urllib.parse import parse_qs, urlsplit

from sqlalchemy import and_, insert, or_, select, update
from sqlalchemy.orm import Session
from user_agents import parse as parse_user_agent

from portfolio.config import settings
from portfolio.services.bot_detection.whitelist import RouteParameterWhitelist
from portfolio.tables import ip_address_metadata_table, logged_requests_table, utcnow

logger = logging.getLogger(__name__)

MIN_REQUESTS_FOR_ANALYSIS = 5
DEFAULT_AVG_REQUEST_INTERVAL = 5.0
SUSPICIOUS_FREQUENCY_MULTIPLIER = 0.3
ENTROPY_THRESHOLD = 4.5

SUSPICIOUS_DEVICE_PATTERNS = {
    "android": {
        "versions": ("4.4", "4.3", "4.2", "4.1", "4.0"),
        "devices": ("Galaxy Note 4", "Galaxy S4", "Galaxy S3"),
        "max_requests_per_minute": 10,
    },
}

_RANDOM_PATTERNS = (
    re.compile(r"^[a-z0-9]{32,}$", re.IGNORECASE),
    re.compile(r"^[0-9]{10,}$"),
    re.compile(r"^(test|debug|admin|hack)", re.IGNORECASE),
)

MANUAL_FLAG_REASON = "Manually flagged as bot from the dashboard"


def shannon_entropy(text: str) -> float:
    if not text:
        return 0.0
    length = len(text)
    return -sum(
        (count / length) * math.log2(count / length) for count in Counter(text).values()
    )


def is_random_parameter(key: str, value: Any) -> bool:
    value_text = value if isinstance(value, str) else json.dumps(value)
    for pattern in _RANDOM_PATTERNS:
        if pattern.search(key) or pattern.search(value_text):
            return True
    return len(value_text) > 10 and shannon_entropy(value_text) > ENTROPY_THRESHOLD


def _load_metadata(raw: Any) -> dict[str, Any] | None:
    if raw is None:
        return None
    if isinstance(raw, dict):
        return raw
    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return decoded if isinstance(decoded, dict) else None


def _default_whitelist() -> RouteParameterWhitelist:
    from portfolio.main import app

    return RouteParameterWhitelist.from_routes(app.routes)


class BotDetectionService:
    def __init__(
        self,
        session: Session,
        whitelist: RouteParameterWhitelist | None = None,
        suspicious_referers: Iterable[str] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session = session
        self._whitelist = whitelist
        self.suspicious_referers = list(
            suspicious_referers if suspicious_referers is not None else settings.bot_suspicious_referers
        )
        self.clock = clock

    @property
    def whitelist(self) -> RouteParameterWhitelist:
        if self._whitelist is None:
            self._whitelist = _default_whitelist()
        return self._whitelist

    def _store(self, request_id: int, **values: Any) -> None:
        self.session.execute(
            update(logged_requests_table)
            .where(logged_requests_table.c.id == request_id)
            .values(bot_analyzed_at=self.clock(), **values)
        )

    def analyze_request(self, request: Mapping[str, Any]) -> dict[str, Any]:
        metadata = _load_metadata(request.get("bot_detection_metadata"))
        if metadata and metadata.get("manually_flagged") is True:
            return {
                "is_bot": True,
                "reasons": [metadata.get("reason") or MANUAL_FLAG_REASON],
                "skipped": True,
                "skip_reason": "Manually flagged - skipping automatic analysis",
            }

        if request.get("user_id") is not None:
            self._store(
                request["id"],
                is_bot_by_frequency=False,
                is_bot_by_user_agent=False,
                is_bot_by_parameters=False,
                bot_detection_metadata={"skipped": True, "reason": "Authenticated user"},
            )
            return {
                "is_bot": False,
                "reasons": [],
                "skipped": True,
                "skip_reason": "Authenticated user",
            }

        reasons: list[str] = []
        frequency = self.analyze_frequency(request)
        by_frequency = frequency["is_suspicious"]
        if by_frequency:
            reasons.append(frequency.get("reason") or "Suspicious frequency pattern")

        by_user_agent = False
        user_agent_analysis = None
        if request.get("user_agent"):
            user_agent_analysis = self.analyze_user_agent(
                request["user_agent"], frequency.get("requests_per_minute") or 0.0
            )
            if user_agent_analysis["is_suspicious"]:
                by_user_agent = True
                reasons.append(user_agent_analysis.get("reason") or "Suspicious user agent")

        referer_analysis = None
        if request.get("referer"):
            referer_analysis = self.analyze_referer(request["referer"])
            if referer_analysis["is_suspicious"]:
                by_user_agent = True
                reasons.append(referer_analysis.get("reason") or "Suspicious referer")

        by_parameters = False
        parameter_analysis = None
        if request.get("url"):
            parameter_analysis = self.analyze_url_parameters(request["url"])
            if parameter_analysis["is_suspicious"]:
                by_parameters = True
                reasons.append(parameter_analysis.get("reason") or "Suspicious URL parameters")

        self._store(
            request["id"],
            is_bot_by_frequency=by_frequency,
            is_bot_by_user_agent=by_user_agent,
            is_bot_by_parameters=by_parameters,
            bot_detection_metadata={
                "reasons": reasons,
                "frequency_analysis": frequency,
                "user_agent_analysis": user_agent_analysis,
                "referer_analysis": referer_analysis,
                "parameter_analysis": parameter_analysis,
            },
        )
        return {
            "is_bot": by_frequency or by_user_agent or by_parameters,
            "reasons": reasons,
        }

    def analyze_request_id(self, request_id: int) -> dict[str, Any] | None:
        row = self.session.execute(
            select(logged_requests_table).where(logged_requests_table.c.id == request_id)
        ).mappings().one_or_none()
        if row is None:
            logger.warning("Logged request %s not found for bot analysis", request_id)
            return None
        return self.analyze_request(row)

    def _ip_metadata(self, ip_address: str, created_at: datetime) -> Mapping[str, Any]:
        row = self.session.execute(
            select(ip_address_metadata_table).where(
                ip_address_metadata_table.c.ip_address == ip_address
            )
        ).mappings().one_or_none()
        if row is not None:
            return row
        self.session.execute(
            insert(ip_address_metadata_table).values(
                ip_address=ip_address,
                first_seen_at=created_at,
                last_seen_at=created_at,
                total_requests=1,
                avg_request_interval=None,
            )
        )
        return {"ip_address": ip_address, "total_requests": 1, "avg_request_interval": None}

    def analyze_frequency(self, request: Mapping[str, Any]) -> dict[str, Any]:
        ip_address = request.get("ip_address")
        created_at = request.get("created_at")
        if not ip_address or created_at is None:
            return {"is_suspicious": False}

        ip_metadata = self._ip_metadata(ip_address, created_at)
        timestamps = self.session.execute(
            select(logged_requests_table.c.created_at)
            .where(
                and_(
                    logged_requests_table.c.ip_address == ip_address,
                    logged_requests_table.c.created_at >= created_at - timedelta(hours=1),
                    logged_requests_table.c.created_at <= created_at,
                )
            )
            .order_by(logged_requests_table.c.created_at.asc())
        ).scalars().all()

        if len(timestamps) < MIN_REQUESTS_FOR_ANALYSIS:
            return {
                "is_suspicious": False,
                "requests_count": len(timestamps),
                "min_required": MIN_REQUESTS_FOR_ANALYSIS,
                "requests_per_minute": 0,
            }

        intervals = [
            abs((current - previous).total_seconds())
            for previous, current in zip(timestamps, timestamps[1:])
        ]
        intervals = [interval for interval in intervals if interval > 0]
        if not intervals:
            return {"is_suspicious": False, "requests_count": len(timestamps)}

        avg_interval = sum(intervals) / len(intervals)
        requests_per_minute = 60 / avg_interval if avg_interval > 0 else 0.0

        expected_interval = ip_metadata.get("avg_request_interval") or DEFAULT_AVG_REQUEST_INTERVAL
        self.session.execute(
            update(ip_address_metadata_table)
            .where(ip_address_metadata_table.c.ip_address == ip_address)
            .values(
                last_seen_at=created_at,
                total_requests=(ip_metadata.get("total_requests") or 0) + 1,
                avg_request_interval=avg_interval,
            )
        )

        threshold = expected_interval * SUSPICIOUS_FREQUENCY_MULTIPLIER
        if (
            (requests_per_minute > 30 and avg_interval < 2)
            or avg_interval <= 1.5
            or (avg_interval < threshold and requests_per_minute > 20)
        ):
            return {
                "is_suspicious": True,
                "reason": (
                    f"High request frequency: {requests_per_minute:.1f} requests/minute "
                    f"(avg interval: {avg_interval:.2f}s)"
                ),
                "requests_per_minute": requests_per_minute,
            }
        return {
            "is_suspicious": False,
            "requests_per_minute": requests_per_minute,
            "requests_count": len(timestamps),
            "avg_interval": avg_interval,
        }

    def analyze_user_agent(self, user_agent: str, requests_per_minute: float) -> dict[str, Any]:
        parsed = parse_user_agent(user_agent)
        if parsed.is_bot:
            return {
                "is_suspicious": True,
                "reason": f"Known bot detected: {parsed.browser.family}",
            }

        android = SUSPICIOUS_DEVICE_PATTERNS["android"]
        if parsed.os.family.lower() == "android":
            os_version = parsed.os.version_string or ""
            device_names = " ".join(
                part for part in (parsed.device.family, parsed.device.model, user_agent) if part
            ).lower()
            for version in android["versions"]:
                if not os_version.startswith(version):
                    continue
                for device in android["devices"]:
                    if (
                        device.lower() in device_names
                        and requests_per_minute > android["max_requests_per_minute"]
                    ):
                        return {
                            "is_suspicious": True,
                            "reason": (
                                f"Suspicious pattern: Old Android {os_version} device ({device}) "
                                f"with high request rate ({requests_per_minute:.1f} req/min)"
                            ),
                        }

        browser = parsed.browser.family
        if (not browser or browser == "Other") and requests_per_minute > 20:
            return {
                "is_suspicious": True,
                "reason": "No browser identified with high request rate",
            }
        return {"is_suspicious": False}

    def analyze_referer(self, referer: str) -> dict[str, Any]:
        lowered = referer.lower()
        for term in self.suspicious_referers:
            if term and term.lower() in lowered:
                return {
                    "is_suspicious": True,
                    "reason": f'Suspicious referer detected: contains "{term}"',
                    "matched_term": term,
                    "referer": referer,
                }
        return {"is_suspicious": False}

    def analyze_url_parameters(self, url: str) -> dict[str, Any]:
        parts = urlsplit(url)
        if not parts.query:
            return {"is_suspicious": False}
        params = parse_qs(parts.query, keep_blank_values=True)
        allowed = set(self.whitelist.parameters_for(parts.path))
        unexpected = [name for name in params if name not in allowed]
        for name in unexpected:
            values = params[name]
            value: Any = values[0] if len(values) == 1 else values
            if is_random_parameter(name, value):
                return {
                    "is_suspicious": True,
                    "reason": "Suspicious URL parameters detected: " + ", ".join(unexpected),
                }
        return {"is_suspicious": False}

    def analyze_unanalyzed_requests(self, limit: int = 100) -> list[dict[str, Any]]:
        rows = self.session.execute(
            select(logged_requests_table)
            .where(
                and_(
                    logged_requests_table.c.bot_analyzed_at.is_(None),
                    logged_requests_table.c.user_id.is_(None),
                )
            )
            .order_by(logged_requests_table.c.created_at.desc())
            .limit(limit)
        ).mappings().all()
        return [{"request_id": row["id"], "analysis": self.analyze_request(row)} for row in rows]

    def reanalyze_old_requests(self, hours_ago: int = 24, limit: int = 100) -> list[dict[str, Any]]:
        cutoff = self.clock() - timedelta(hours=hours_ago)
        ips = self.session.execute(
            select(ip_address_metadata_table.c.ip_address).where(
                or_(
                    ip_address_metadata_table.c.last_bot_analysis_at.is_(None),
                    ip_address_metadata_table.c.last_bot_analysis_at < cutoff,
                )
            )
        ).scalars().all()
        if not ips:
            return []
        rows = self.session.execute(
            select(logged_requests_table)
            .where(
                and_(
                    logged_requests_table.c.ip_address.in_(ips),
                    logged_requests_table.c.user_id.is_(None),
                    logged_requests_table.c.created_at >= cutoff,
                )
            )
            .order_by(logged_requests_table.c.created_at.desc())
            .limit(limit)
        ).mappings().all()
        results = [{"request_id": row["id"], "analysis": self.analyze_request(row)} for row in rows]
        self.session.execute(
            update(ip_address_metadata_table)
            .where(ip_address_metadata_table.c.ip_address.in_(ips))
            .values(last_bot_analysis_at=self.clock())
        )
        return results


def mark_as_bot(session: Session, request_ids: Iterable[int], flagged_by: str | None = None) -> int:
    ids = list(request_ids)
    result = session.execute(
        update(logged_requests_table)
        .where(logged_requests_table.c.id.in_(ids))
        .values(
            is_bot_by_user_agent=True,
            bot_detection_metadata={
                "manually_flagged": True,
                "flagged_at": utcnow().isoformat(sep=" ", timespec="seconds"),
                "flagged_by": flagged_by,
                "reason": MANUAL_FLAG_REASON,
            },
        )
    )
    return result.rowcount or 0
