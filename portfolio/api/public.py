from typing import Any, Dict
from xml.sax.saxutils import escape

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy import select
from sqlalchemy.orm import Session

from portfolio.config import settings
from portfolio.deps import db_session_dependency, not_found
from portfolio.locale import request_locale
from portfolio.services.creations import present_creation
from portfolio.tables import creations_table, social_media_links_table

router = APIRouter(tags=["public"])


def _social_links(session: Session) -> list[dict[str, Any]]:
    rows = session.execute(
        select(social_media_links_table).order_by(social_media_links_table.c.id)
    ).mappings().all()
    return [dict(row) for row in rows]


@router.get("/")
async def home(
    locale: str = Depends(request_locale),
    session: Session = Depends(db_session_dependency),
) -> Dict[str, Any]:
    featured = session.execute(
        select(creations_table)
        .where(creations_table.c.featured.is_(True))
        .order_by(creations_table.c.started_at.desc(), creations_table.c.id.desc())
    ).mappings().all()
    return {
        "locale": locale,
        "featured_creations": [present_creation(session, row, locale) for row in featured],
        "social_media_links": _social_links(session),
    }


@router.get("/projects")
async def projects(
    locale: str = Depends(request_locale),
    session: Session = Depends(db_session_dependency),
) -> Dict[str, Any]:
    rows = session.execute(
        select(creations_table).order_by(creations_table.c.started_at.desc(), creations_table.c.id.desc())
    ).mappings().all()
    return {
        "locale": locale,
        "creations": [present_creation(session, row, locale) for row in rows],
        "social_media_links": _social_links(session),
    }


@router.get("/projects/{slug}")
async def project_detail(
    slug: str,
    locale: str = Depends(request_locale),
    session: Session = Depends(db_session_dependency),
) -> Dict[str, Any]:
    row = session.execute(
        select(creations_table).where(creations_table.c.slug == slug)
    ).mappings().one_or_none()
    if row is None:
        raise not_found("Project not found")
    return {
        "locale": locale,
        "creation": present_creation(session, row, locale, with_screenshots=True),
        "social_media_links": _social_links(session),
    }


@router.get("/sitemap.xml")
async def sitemap(session: Session = Depends(db_session_dependency)) -> Response:
    base = settings.app_url.rstrip("/")
    entries = [(f"{base}/", None), (f"{base}/projects", None)]
    rows = session.execute(
        select(creations_table.c.slug, creations_table.c.updated_at).order_by(creations_table.c.slug)
    ).all()
    entries += [(f"{base}/projects/{slug}", updated_at) for slug, updated_at in rows]

    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
    ]
    for loc, updated_at in entries:
        lines.append("  <url>")
        lines.append(f"    <loc>{escape(loc)}</loc>")
        if updated_at is not None:
            lines.append(f"    <lastmod>{updated_at.date().isoformat()}</lastmod>")
        lines.append("  </url>")
    lines.append("</urlset>")
    return Response(content="\n".join(lines) + "\n", media_type="application/xml")
