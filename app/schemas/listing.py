from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator


class PropertyType(str, Enum):
    HOUSE = "HOUSE"
    CONDO = "CONDO"
    TOWNHOUSE = "TOWNHOUSE"
    APARTMENT = "APARTMENT"
    LOT = "LOT"
    COMMERCIAL = "COMMERCIAL"
    WAREHOUSE = "WAREHOUSE"
    FARM = "FARM"


class TransactionType(str, Enum):
    SALE = "SALE"
    RENT = "RENT"


def _dedupe_features(v: list[str] | None) -> list[str] | None:
    if v is None:
        return v
    seen: list[str] = []
    for tag in v:
        tag = tag.strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


class ListingCreate(BaseModel):
    # drafts may be incomplete; the publish gate enforces minimums
    title: str = Field(default="", max_length=200)
    description: str | None = Field(default=None, max_length=10_000)
    property_type: PropertyType
    transaction_type: TransactionType
    province: str = Field(default="", max_length=120)
    city: str = Field(default="", max_length=120)
    district: str | None = Field(default=None, max_length=120)
    bedrooms: int | None = Field(default=None, ge=0, le=100)
    bathrooms: int | None = Field(default=None, ge=0, le=100)
    features: list[str] = Field(default_factory=list, max_length=100)
    price: Decimal | None = Field(default=None, gt=0, max_digits=14, decimal_places=2)

    @field_validator("features")
    @classmethod
    def dedupe_features(cls, v):
        return _dedupe_features(v)


# columns that cannot hold NULL; an explicit null in a PATCH is rejected
_REQUIRED_ON_UPDATE = ("title", "property_type", "transaction_type", "province", "city", "features")


class ListingUpdate(BaseModel):
    """Partial content edit. Only fields present in the request body are written."""

    title: str | None = Field(default=None, max_length=200)
    description: str | None = Field(default=None, max_length=10_000)
    property_type: PropertyType | None = None
    transaction_type: TransactionType | None = None
    province: str | None = Field(default=None, max_length=120)
    city: str | None = Field(default=None, max_length=120)
    district: str | None = Field(default=None, max_length=120)
    bedrooms: int | None = Field(default=None, ge=0, le=100)
    bathrooms: int | None = Field(default=None, ge=0, le=100)
    features: list[str] | None = Field(default=None, max_length=100)
    price: Decimal | None = Field(default=None, gt=0, max_digits=14, decimal_places=2)

    @field_validator("features")
    @classmethod
    def dedupe_features(cls, v):
        return _dedupe_features(v)

    @model_validator(mode="after")
    def reject_null_required(self):
        for name in _REQUIRED_ON_UPDATE:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict:
        data = self.model_dump(exclude_unset=True)
        for key in ("property_type", "transaction_type"):
            if data.get(key) is not None:
                data[key] = data[key].value
        return data


class ListingOut(BaseModel):
    id: str
    agent_id: str
    status: str
    title: str
    description: str | None
    property_type: str
    transaction_type: str
    province: str
    city: str
    district: str | None
    bedrooms: int | None
    bathrooms: int | None
    features: list[str]
    price: Decimal | None
    published_at: datetime | None

    # embedding bookkeeping; the vector itself is never exposed
    embedding_version: int
    content_fingerprint: str | None
    embedding_stale: bool
    embedding_error: str | None


class TransitionOut(BaseModel):
    listing_id: str
    transition: str
    previous_status: str
    status: str
    published_at: datetime | None


class SimilarListingOut(BaseModel):
    id: str
    title: str
    property_type: str
    transaction_type: str
    price: Decimal | None
    province: str
    city: str
    district: str | None
    bedrooms: int | None
    bathrooms: int | None
    features: list[str]
    published_at: datetime | None
    similarity: float


class SimilarListingsOut(BaseModel):
    properties: list[SimilarListingOut]


class SearchPaginationOut(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class SearchFiltersOut(BaseModel):
    property_type: str | None = None
    transaction_type: str | None = None
    price_min: Decimal | None = None
    price_max: Decimal | None = None
    province: str | None = None
    city: str | None = None
    bedrooms_min: int | None = None
    bedrooms_max: int | None = None
    bathrooms_min: int | None = None
    bathrooms_max: int | None = None


class SearchResultsOut(BaseModel):
    properties: list[SimilarListingOut]
    query: str
    pagination: SearchPaginationOut
    filters: SearchFiltersOut
