from __future__ import annotations

import pytest

from portfolio.services.translation import store
from portfolio.services.translation.keys import TranslationKeyDuplicator, TranslationKeyGenerator


def test_generate_uses_plain_suffix_when_free(session) -> None:
    store.create_key(session, "about.title")
    assert TranslationKeyGenerator(session).generate("about.title", "copy") == "about.title_copy"


def test_generate_increments_counter_until_free(session) -> None:
    for key in ("about.title", "about.title_copy", "about.title_copy_1"):
        store.create_key(session, key)
    generator = TranslationKeyGenerator(session)
    assert generator.generate("about.title", "copy") == "about.title_copy_2"
    assert generator.generate_for_draft("about.title") == "about.title_draft"


def test_duplicate_copies_every_locale(session) -> None:
    key_id = store.store_texts(session, "project.summary", {"fr": "Bonjour :name", "en": "Hello :name"})

    duplicated = TranslationKeyDuplicator(session).duplicate(key_id, "copy")

    assert duplicated["key"] == "project.summary_copy"
    assert duplicated["id"] != key_id
    assert store.texts_for_key(session, duplicated["id"]) == {"fr": "Bonjour :name", "en": "Hello :name"}
    assert store.texts_for_key(session, key_id) == {"fr": "Bonjour :name", "en": "Hello :name"}


def test_duplicate_twice_yields_distinct_keys(session) -> None:
    key_id = store.store_texts(session, "project.summary", {"fr": "Texte"})
    duplicator = TranslationKeyDuplicator(session)

    first = duplicator.duplicate_for_draft(key_id)
    second = duplicator.duplicate_for_draft(key_id)

    assert (first["key"], second["key"]) == ("project.summary_draft", "project.summary_draft_1")
    assert store.get_text(session, second["id"], "fr") == "Texte"


def test_duplicate_key_without_translations(session) -> None:
    key_id = store.create_key(session, "empty.key")
    duplicated = TranslationKeyDuplicator(session).duplicate_for_copy(key_id)
    assert duplicated["key"] == "empty.key_copy"
    assert store.texts_for_key(session, duplicated["id"]) == {}


def test_duplicate_unknown_key_raises(session) -> None:
    with pytest.raises(LookupError):
        TranslationKeyDuplicator(session).duplicate(12345)


def test_duplicate_optional_passes_none_through(session) -> None:
    assert TranslationKeyDuplicator(session).duplicate_optional(None, "draft") is None
