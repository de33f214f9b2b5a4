from __future__ import annotations

from sqlalchemy.orm import Session

from portfolio.database import get_session
from portfolio.services.translation import store


def _seed(key: str, texts: dict[str, str]) -> int:
    with get_session() as session:
        return store.store_texts(session, key, texts)


def _translation_id(key_id: int, locale: str) -> int:
    with get_session() as session:
        return store.find_translation(session, key_id, locale)["id"]


def test_public_lookup_by_key_and_locale(client) -> None:
    key_id = _seed("home.title", {"fr": "Bonjour", "en": "Hello"})

    response = client.get("/api/translations/home.title/en")

    assert response.status_code == 200
    assert response.json() == {
        "id": _translation_id(key_id, "en"),
        "translation_key_id": key_id,
        "key": "home.title",
        "locale": "en",
        "text": "Hello",
    }
    assert client.get("/api/translations/home.title/de").status_code == 404
    assert client.get("/api/translations/missing/en").json() == {"detail": "Translation not found"}


def test_management_routes_require_auth(client) -> None:
    assert client.get("/api/translations").status_code == 401
    assert client.post("/api/translations", json={"key": "a", "locale": "en", "text": "A"}).status_code == 401
    assert client.get("/dashboard/api/translations").status_code == 401


def test_create_list_update_delete(client, auth_headers) -> None:
    created = client.post(
        "/api/translations",
        json={"key": "footer.copyright", "locale": "fr", "text": "Tous droits"},
        headers=auth_headers,
    )
    assert created.status_code == 201
    body = created.json()
    assert body["key"] == "footer.copyright"

    duplicate = client.post(
        "/api/translations",
        json={"key": "footer.copyright", "locale": "fr", "text": "Encore"},
        headers=auth_headers,
    )
    assert duplicate.status_code == 422
    assert "locale" in duplicate.json()["detail"]

    bad_locale = client.post(
        "/api/translations",
        json={"key": "footer.copyright", "locale": "de", "text": "Rechte"},
        headers=auth_headers,
    )
    assert bad_locale.json()["detail"] == {"locale": ["The selected locale is invalid."]}

    updated = client.put(
        "/api/translations",
        json={"key": "footer.copyright", "locale": "fr", "text": "Tous droits réservés"},
        headers=auth_headers,
    )
    assert updated.status_code == 200
    assert updated.json()["text"] == "Tous droits réservés"

    listed = client.get("/api/translations", headers=auth_headers).json()
    assert [(item["key"], item["locale"]) for item in listed] == [("footer.copyright", "fr")]

    assert client.delete(f"/api/translations/{body['id']}", headers=auth_headers).status_code == 200
    assert client.delete(f"/api/translations/{body['id']}", headers=auth_headers).status_code == 404


def test_update_requires_a_key_reference(client, auth_headers) -> None:
    response = client.put("/api/translations", json={"locale": "fr", "text": "x"}, headers=auth_headers)
    assert response.status_code == 422
    assert response.json()["detail"] == {"__root__": ["Either key or translation_key_id is required."]}


def test_dashboard_french_edit_queues_translation(client, auth_headers, dispatched) -> None:
    key_id = _seed("about.intro", {"fr": "Ancien texte"})

    response = client.put(
        f"/dashboard/api/translations/{_translation_id(key_id, 'fr')}",
        json={"text": "Nouveau texte"},
        headers=auth_headers,
    )

    assert response.json() == {
        "success": True,
        "message": "Translation updated successfully",
        "auto_translation_queued": True,
    }
    assert dispatched == [
        ("translate_translation_key", (key_id,), {"source_locale": "fr", "target_locale": "en"})
    ]


def test_dashboard_french_edit_commits_before_queueing(client, auth_headers, monkeypatch) -> None:
    key_id = _seed("about.intro", {"fr": "Ancien texte"})
    translation_id = _translation_id(key_id, "fr")
    events: list[str] = []
    original_commit = Session.commit

    def _commit(self) -> None:
        events.append("commit")
        original_commit(self)

    async def _dispatch(task, *args, **kwargs) -> None:
        events.append("dispatch")

    monkeypatch.setattr(Session, "commit", _commit)
    monkeypatch.setattr("portfolio.jobs.broker.dispatch", _dispatch)

    client.put(
        f"/dashboard/api/translations/{translation_id}",
        json={"text": "Nouveau texte"},
        headers=auth_headers,
    )

    assert "dispatch" in events
    assert events.index("commit") < events.index("dispatch")


def test_dashboard_english_edit_does_not_queue(client, auth_headers, dispatched) -> None:
    key_id = _seed("about.intro", {"fr": "Texte", "en": ""})

    response = client.put(
        f"/dashboard/api/translations/{_translation_id(key_id, 'en')}",
        json={"text": "Text"},
        headers=auth_headers,
    )

    assert response.json()["auto_translation_queued"] is False
    assert dispatched == []


def test_translate_single_key(client, auth_headers, dispatched) -> None:
    pending = _seed("skills.title", {"fr": "Compétences"})
    done = _seed("skills.subtitle", {"fr": "Outils", "en": "Tools"})
    no_source = _seed("skills.empty", {"en": ""})

    assert client.post(f"/dashboard/api/translations/{pending}/translate", headers=auth_headers).status_code == 200
    already = client.post(f"/dashboard/api/translations/{done}/translate", headers=auth_headers)
    assert (already.status_code, already.json()["detail"]) == (400, "English translation already exists")
    missing = client.post(f"/dashboard/api/translations/{no_source}/translate", headers=auth_headers)
    assert (missing.status_code, missing.json()["detail"]) == (400, "No French translation found to translate from")
    assert client.post("/dashboard/api/translations/9999/translate", headers=auth_headers).status_code == 404
    assert [call[1] for call in dispatched] == [(pending,)]


def test_translate_batch_counts(client, auth_headers, dispatched) -> None:
    first = _seed("nav.home", {"fr": "Accueil"})
    second = _seed("nav.projects", {"fr": "Projets"})
    translated = _seed("nav.contact", {"fr": "Contact", "en": "Contact"})

    response = client.post(
        "/dashboard/api/translations/translate-batch",
        json={"translation_key_ids": [first, second, translated, first]},
        headers=auth_headers,
    )

    assert response.json() == {"queued": 2, "skipped": 1}
    assert len(dispatched) == 2


def test_dashboard_listing_filters(client, auth_headers) -> None:
    _seed("nav.home", {"fr": "Accueil", "en": "Home"})
    _seed("nav.blog", {"fr": "Blog"})

    by_search = client.get("/dashboard/api/translations", params={"search": "Home"}, headers=auth_headers).json()
    assert [item["key"] for item in by_search["translation_keys"]] == ["nav.home"]

    english = client.get("/dashboard/api/translations", params={"locale": "en"}, headers=auth_headers).json()
    assert [item["key"] for item in english["translation_keys"]] == ["nav.home"]

    everything = client.get("/dashboard/api/translations", headers=auth_headers).json()
    assert [item["key"] for item in everything["translation_keys"]] == ["nav.blog", "nav.home"]
    assert everything["filters"]["locale"] == "all"
