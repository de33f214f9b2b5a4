from __future__ import annotations

import re
from typing import Any, Iterable, Mapping

from fastapi.routing import APIRoute

COMMON_PARAMETERS = (
    # Pagination
    "page",
    "per_page",
    "limit",
    "offset",
    # Sorting
    "sort",
    "order",
    "order_by",
    "sort_by",
    "direction",
    # Filtering
    "search",
    "q",
    "query",
    "filter",
    "filters",
    # Format
    "format",
    "type",
    # Locale
    "lang",
    "locale",
    "language",
    # Authentication
    "token",
    "api_key",
    "_token",
    "_method",
    # Common ids
    "id",
    "uuid",
    "slug",
)

MANUAL_OVERRIDES: dict[str, tuple[str, ...]] = {
    "dashboard/request-logs": (
        "is_bot",
        "include_ips",
        "exclude_ips",
        "date_from",
        "date_to",
    ),
    "projects": (),
    "": (),
    "dashboard/api/creations": ("with_drafts", "only_published"),
    "dashboard/api/technologies": ("type",),
}


def _query_parameter_names(dependant: Any) -> list[str]:
    names = [param.alias or param.name for param in dependant.query_params]
    for sub_dependant in dependant.dependencies:
        names.extend(_query_parameter_names(sub_dependant))
    return names


_ROUTE_PARAM_RE = re.compile(r"\{[^}]+\}")


def _pattern(template: str) -> re.Pattern:
    parts = _ROUTE_PARAM_RE.split(template)
    regex = "[^/]+".join(re.escape(part) for part in parts)
    return re.compile(f"^{regex}$")


class RouteParameterWhitelist:
    """Query parameters each route is expected to receive."""

    def __init__(self, routes: Mapping[str, Iterable[str]] | None = None) -> None:
        self._exact: dict[str, list[str]] = {}
        self._patterns: list[tuple[re.Pattern, list[str]]] = []
        for template, params in (routes or {}).items():
            self.add(template, params)
        for template, params in MANUAL_OVERRIDES.items():
            self.add(template, params)

    def add(self, template: str, params: Iterable[str]) -> None:
        key = template.strip("/")
        if "{" in key:
            self._patterns.append((_pattern(key), list(dict.fromkeys([*COMMON_PARAMETERS, *params]))))
        else:
            known = self._exact.get(key, list(COMMON_PARAMETERS))
            self._exact[key] = list(dict.fromkeys([*known, *params]))

    def parameters_for(self, path: str) -> list[str]:
        key = (path or "").strip("/")
        if key in self._exact:
            return self._exact[key]
        for pattern, params in self._patterns:
            if pattern.match(key):
                return params
        return list(COMMON_PARAMETERS)

    @classmethod
    def from_routes(cls, routes: Iterable) -> "RouteParameterWhitelist":
        collected: dict[str, list[str]] = {}
        for route in routes:
            if not isinstance(route, APIRoute):
                continue
            names = _query_parameter_names(route.dependant)
            collected.setdefault(route.path, [])
            collected[route.path].extend(names)
        return cls(collected)
