from typing import Optional

from fastapi import Request

from portfolio.config import settings


def parse_accept_language(header: Optional[str]) -> list[tuple[str, float]]:
    """Language tags of an Accept-Language header, best first."""
    entries: list[tuple[str, float]] = []
    for part in (header or "").split(","):
        tag, _, params = part.strip().partition(";")
        tag = tag.strip().lower()
        if not tag:
            continue
        quality = 1.0
        params = params.strip()
        if params.startswith("q="):
            try:
                quality = float(params[2:])
            except ValueError:
                quality = 0.0
        entries.append((tag, quality))
    entries.sort(key=lambda item: item[1], reverse=True)
    return entries


def preferred_locale(header: Optional[str]) -> str:
    entries = parse_accept_language(header)
    if not entries:
        return settings.default_locale
    primary = entries[0][0].split("-")[0]
    return "fr" if primary == "fr" else "en"


def request_locale(request: Request) -> str:
    explicit = request.query_params.get("locale")
    if explicit and explicit.lower() in settings.locales:
        return explicit.lower()
    return preferred_locale(request.headers.get("accept-language"))
