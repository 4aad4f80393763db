from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, dataclass, field
from typing import Any

# Bump when the rendering rules below change: it is part of every fingerprint,
# so the sweep re-embeds all listings on the next pass.
EMBEDDING_TEXT_BUILDER_VERSION = "listing-text.v1"

PROPERTY_TYPE_SYNONYMS: dict[str, str] = {
    "HOUSE": "house",
    "CONDO": "condominium condo",
    "TOWNHOUSE": "townhouse",
    "APARTMENT": "apartment",
    "LOT": "lot land vacant",
    "COMMERCIAL": "commercial office retail",
    "WAREHOUSE": "warehouse industrial",
    "FARM": "farm agricultural land",
}

TRANSACTION_TYPE_SYNONYMS: dict[str, str] = {
    "SALE": "sale buy purchase",
    "RENT": "rent lease",
}


@dataclass(frozen=True)
class ListingContent:
    """The exact fields that feed the embedding text (and therefore the fingerprint)."""

    title: str
    property_type: str
    transaction_type: str
    description: str | None = None
    province: str = ""
    city: str = ""
    district: str | None = None
    bedrooms: int | None = None
    bathrooms: int | None = None
    features: tuple[str, ...] = field(default_factory=tuple)


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count > 1 else ''}"


def build_embedding_text(content: ListingContent) -> str:
    """
    Render listing content into the canonical text sent to the embedding provider.

    Order: type/transaction synonyms, title, description, location
    (district city province), bedroom/bathroom counts in two surface forms,
    feature tags. Empty parts are omitted; the result is lower-cased.
    """
    type_words = PROPERTY_TYPE_SYNONYMS.get(content.property_type, content.property_type)
    transaction_words = TRANSACTION_TYPE_SYNONYMS.get(content.transaction_type, content.transaction_type)

    parts: list[str] = [f"{type_words} for {transaction_words}", content.title]

    if content.description:
        parts.append(content.description)

    location = " ".join(p for p in (content.district, content.city, content.province) if p)
    parts.append(location)

    if content.bedrooms:
        parts.append(f"{_plural(content.bedrooms, 'bedroom')} {content.bedrooms}BR")
    if content.bathrooms:
        parts.append(f"{_plural(content.bathrooms, 'bathroom')} {content.bathrooms}T&B")

    if content.features:
        parts.append(" ".join(content.features))

    return " ".join(p.strip() for p in parts if p and p.strip()).lower()


def _stable_json(data: Any) -> str:
    # Deterministic JSON string for hashing
    return json.dumps(data, ensure_ascii=False, separators=(",", ":"), sort_keys=True)


def content_fingerprint(content: ListingContent) -> str:
    # Hash of the input fields, not the rendered text; the builder version covers rendering changes.
    fields = asdict(content)
    fields["features"] = list(content.features)
    payload = {"builder": EMBEDDING_TEXT_BUILDER_VERSION, "content": fields}
    return "sha256:" + hashlib.sha256(_stable_json(payload).encode("utf-8")).hexdigest()
