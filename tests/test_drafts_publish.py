from __future__ import annotations

import pytest
from sqlalchemy import insert, select

from portfolio.database import get_session
from portfolio.services import creations as creation_service
from portfolio.services.screenshots import add_draft_screenshot, list_draft_screenshots
from portfolio.services.translation import store
from portfolio.tables import (
    creation_drafts_table,
    creation_tag_table,
    creations_table,
    screenshots_table,
    tags_table,
)
from tests.factories import make_creation, make_draft, make_picture, make_screenshot


def _tag(session, name: str) -> int:
    return session.execute(
        insert(tags_table).values(name=name, slug=name.lower()).returning(tags_table.c.id)
    ).scalar_one()


def _publishable_draft(session, **overrides) -> int:
    values = {
        "logo_id": make_picture(session, "logo.png"),
        "cover_image_id": make_picture(session, "cover.png"),
        "short_description_translation_key_id": store.store_texts(
            session, "creation.short.portfolio", {"fr": "Mon portfolio"}
        ),
    }
    values.update(overrides)
    return make_draft(session, **values)


def test_draft_from_creation_copies_texts_screenshots_and_relations(session) -> None:
    short = store.store_texts(session, "creation.short.site", {"fr": "Court", "en": "Short"})
    caption = store.store_texts(session, "screenshot.caption.site", {"fr": "Accueil"})
    creation_id = make_creation(session, slug="site", short_description_translation_key_id=short)
    picture_id = make_picture(session)
    make_screenshot(session, creation_id, picture_id, order=1, caption_id=caption)
    tag_id = _tag(session, "Python")
    session.execute(insert(creation_tag_table).values(creation_id=creation_id, tag_id=tag_id))

    draft = creation_service.draft_from_creation(session, creation_id)

    assert draft["original_creation_id"] == creation_id
    assert draft["slug"] == "site"
    assert draft["short_description_translation_key_id"] != short
    assert store.texts_for_key(session, draft["short_description_translation_key_id"]) == {
        "fr": "Court",
        "en": "Short",
    }
    assert store.get_key(session, draft["short_description_translation_key_id"])["key"] == "creation.short.site_draft"
    screenshots = list_draft_screenshots(session, draft["id"])
    assert [(shot["picture_id"], shot["order"]) for shot in screenshots] == [(picture_id, 1)]
    assert screenshots[0]["caption_translation_key_id"] != caption
    assert creation_service.related_ids(session, draft["id"], "tags") == [tag_id]


def test_draft_from_unknown_creation(session) -> None:
    with pytest.raises(LookupError):
        creation_service.draft_from_creation(session, 404)


def test_publish_new_draft_creates_creation(session) -> None:
    draft_id = _publishable_draft(session)
    picture_id = make_picture(session)
    add_draft_screenshot(session, draft_id, picture_id=picture_id)
    add_draft_screenshot(session, draft_id, picture_id=picture_id)
    tag_id = _tag(session, "FastAPI")
    creation_service.attach(session, draft_id, "tags", [tag_id])

    creation = creation_service.publish_draft(session, draft_id)

    assert creation["slug"] == "portfolio"
    assert creation_service.get_draft(session, draft_id) is None
    assert [shot["order"] for shot in creation_service.list_screenshots(session, creation["id"])] == [1, 2]
    assert creation_service.related_ids(session, creation["id"], "tags", published=True) == [tag_id]


def test_publish_updates_original_and_replaces_screenshots(session) -> None:
    creation_id = make_creation(session, name="Old name", slug="portfolio")
    old_picture = make_picture(session, "old.png")
    make_screenshot(session, creation_id, old_picture, order=1)
    new_picture = make_picture(session, "new.png")
    draft_id = _publishable_draft(session, name="New name", original_creation_id=creation_id)
    add_draft_screenshot(session, draft_id, picture_id=new_picture)

    creation = creation_service.publish_draft(session, draft_id)

    assert creation["id"] == creation_id
    assert creation["name"] == "New name"
    pictures = session.execute(
        select(screenshots_table.c.picture_id).where(screenshots_table.c.creation_id == creation_id)
    ).scalars().all()
    assert pictures == [new_picture]
    assert session.execute(select(creations_table.c.id)).scalars().all() == [creation_id]


def test_publish_requires_texts_and_images(session) -> None:
    draft_id = make_draft(session)
    with pytest.raises(creation_service.DraftPublishError) as caught:
        creation_service.publish_draft(session, draft_id)
    assert caught.value.errors == {
        "short_description": ["The short description is required."],
        "logo": ["The logo is required."],
        "cover_image": ["The cover image is required."],
    }
    assert creation_service.get_draft(session, draft_id) is not None


def test_publish_endpoint_checks_slug(client, auth_headers) -> None:
    with get_session() as session:
        make_creation(session, slug="portfolio")
        draft_id = _publishable_draft(session)

    response = client.post(f"/dashboard/api/creation-drafts/{draft_id}/publish", headers=auth_headers)

    assert response.status_code == 422
    assert response.json()["detail"] == {"slug": ["The slug has already been taken."]}


def test_publish_endpoint_returns_creation(client, auth_headers) -> None:
    with get_session() as session:
        draft_id = _publishable_draft(session)

    response = client.post(f"/dashboard/api/creation-drafts/{draft_id}/publish", headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["slug"] == "portfolio"
    assert body["tags"] == []
    assert client.get(f"/dashboard/api/creation-drafts/{draft_id}", headers=auth_headers).status_code == 404


def test_draft_crud_and_validation(client, auth_headers) -> None:
    payload = {"name": "Game", "slug": "game", "type": "game", "started_at": "2024-02-01"}
    created = client.post("/dashboard/api/creation-drafts", json=payload, headers=auth_headers)
    assert created.status_code == 201
    draft_id = created.json()["id"]

    bad_logo = client.put(
        f"/dashboard/api/creation-drafts/{draft_id}", json={**payload, "logo_id": 999}, headers=auth_headers
    )
    assert bad_logo.json()["detail"] == {"logo_id": ["The selected logo_id is invalid."]}

    bad_dates = client.post(
        "/dashboard/api/creation-drafts", json={**payload, "ended_at": "2023-01-01"}, headers=auth_headers
    )
    assert bad_dates.status_code == 422

    renamed = client.put(
        f"/dashboard/api/creation-drafts/{draft_id}", json={**payload, "name": "Game 2"}, headers=auth_headers
    )
    assert renamed.json()["name"] == "Game 2"
    assert client.delete(f"/dashboard/api/creation-drafts/{draft_id}", headers=auth_headers).status_code == 204
    assert client.get("/dashboard/api/creation-drafts", headers=auth_headers).json() == []


def test_edit_creation_reuses_existing_draft(client, auth_headers) -> None:
    with get_session() as session:
        creation_id = make_creation(session)

    first = client.post(f"/dashboard/api/creations/{creation_id}/draft", headers=auth_headers).json()
    second = client.post(f"/dashboard/api/creations/{creation_id}/draft", headers=auth_headers).json()

    assert first["id"] == second["id"]
    listed = client.get("/dashboard/api/creations", params={"with_drafts": True}, headers=auth_headers).json()
    assert listed[0]["draft_ids"] == [first["id"]]
    assert client.post("/dashboard/api/creations/999/draft", headers=auth_headers).status_code == 404


def test_attach_and_detach_tags(client, auth_headers) -> None:
    with get_session() as session:
        draft_id = make_draft(session)
        python = _tag(session, "Python")
        rust = _tag(session, "Rust")

    attached = client.post(
        f"/dashboard/api/creation-drafts/{draft_id}/attach-tag", json={"ids": [python, rust]}, headers=auth_headers
    )
    assert attached.json() == {"tags": [python, rust]}

    detached = client.post(
        f"/dashboard/api/creation-drafts/{draft_id}/detach-tag", json={"ids": [rust]}, headers=auth_headers
    )
    assert detached.json() == {"tags": [python]}

    unknown = client.post(
        f"/dashboard/api/creation-drafts/{draft_id}/attach-tag", json={"ids": [python, 999]}, headers=auth_headers
    )
    assert unknown.json()["detail"] == {"ids.1": ["The selected ids.1 is invalid."]}

    rows = client.get(f"/dashboard/api/creation-drafts/{draft_id}/relations/tags", headers=auth_headers).json()
    assert [row["name"] for row in rows] == ["Python"]
    with get_session() as session:
        assert session.execute(select(creation_drafts_table.c.id)).scalars().all() == [draft_id]
