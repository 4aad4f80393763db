from dataclasses import replace

from app.services import embedding_text
from app.services.embedding_text import ListingContent, build_embedding_text, content_fingerprint
from tests.helpers import VALID_CONTENT


def test_build_embedding_text_full_listing():
    assert build_embedding_text(VALID_CONTENT) == (
        "condominium condo for sale buy purchase "
        "sunny two bedroom condo in makati "
        "bright corner unit with city views, walking distance to malls and offices. "
        "poblacion makati metro manila "
        "2 bedrooms 2br "
        "1 bathroom 1t&b "
        "balcony pool gym"
    )


def test_build_embedding_text_omits_empty_parts():
    content = ListingContent(
        title="Vacant Lot Near Highway",
        property_type="LOT",
        transaction_type="RENT",
        description=None,
        province="Cavite",
        city="",
        district=None,
        bedrooms=None,
        bathrooms=0,
        features=(),
    )

    assert build_embedding_text(content) == "lot land vacant for rent lease vacant lot near highway cavite"


def test_build_embedding_text_unknown_property_type_is_rendered_verbatim():
    content = replace(VALID_CONTENT, property_type="CASTLE", description=None, features=())
    assert build_embedding_text(content).startswith("castle for sale buy purchase sunny two bedroom")


def test_build_embedding_text_is_deterministic():
    assert build_embedding_text(VALID_CONTENT) == build_embedding_text(replace(VALID_CONTENT))


def test_fingerprint_stable_for_same_content():
    fp = content_fingerprint(VALID_CONTENT)
    assert fp.startswith("sha256:")
    assert fp == content_fingerprint(replace(VALID_CONTENT))


def test_fingerprint_changes_with_any_embedded_field():
    base = content_fingerprint(VALID_CONTENT)
    for change in (
        {"title": "Sunny two bedroom condo in Taguig"},
        {"description": VALID_CONTENT.description + " Pet friendly."},
        {"district": "Bel-Air"},
        {"bedrooms": 3},
        {"features": ("balcony", "pool")},
        {"transaction_type": "RENT"},
    ):
        assert content_fingerprint(replace(VALID_CONTENT, **change)) != base, change


def test_fingerprint_covers_builder_version(monkeypatch):
    before = content_fingerprint(VALID_CONTENT)
    monkeypatch.setattr(embedding_text, "EMBEDDING_TEXT_BUILDER_VERSION", "listing-text.v2")
    assert content_fingerprint(VALID_CONTENT) != before
