import math
from dataclasses import asdict
from decimal import Decimal

from fastapi import APIRouter, Depends, Query

from app.api.v1.deps import get_similarity_retriever
from app.schemas.listing import (
    PropertyType,
    SearchFiltersOut,
    SearchPaginationOut,
    SearchResultsOut,
    TransactionType,
)
from app.services.listing_store import SearchFilters
from app.services.listings import similar_listing_out
from app.services.similarity import DEFAULT_SEARCH_LIMIT, MAX_SEARCH_LIMIT, SimilarityRetriever

router = APIRouter()


@router.get("/search", response_model=SearchResultsOut)
async def search_properties(
    q: str | None = None,
    query: str | None = None,
    page: int = Query(default=1, ge=1),
    # larger values are capped at 50
    limit: int = Query(default=DEFAULT_SEARCH_LIMIT, ge=1),
    property_type: PropertyType | None = None,
    transaction_type: TransactionType | None = None,
    price_min: Decimal | None = Query(default=None, ge=0),
    price_max: Decimal | None = Query(default=None, ge=0),
    province: str | None = None,
    city: str | None = None,
    bedrooms_min: int | None = Query(default=None, ge=0),
    bedrooms_max: int | None = Query(default=None, ge=0),
    bathrooms_min: int | None = Query(default=None, ge=0),
    bathrooms_max: int | None = Query(default=None, ge=0),
    retriever: SimilarityRetriever = Depends(get_similarity_retriever),
) -> SearchResultsOut:
    text = q or query or ""
    limit = min(limit, MAX_SEARCH_LIMIT)
    filters = SearchFilters(
        property_type=property_type.value if property_type else None,
        transaction_type=transaction_type.value if transaction_type else None,
        price_min=price_min,
        price_max=price_max,
        province=province or None,
        city=city or None,
        bedrooms_min=bedrooms_min,
        bedrooms_max=bedrooms_max,
        bathrooms_min=bathrooms_min,
        bathrooms_max=bathrooms_max,
    )

    found = await retriever.search(text, filters, limit=limit, offset=(page - 1) * limit)

    return SearchResultsOut(
        properties=[similar_listing_out(r) for r in found.results],
        query=text.strip(),
        pagination=SearchPaginationOut(
            page=page,
            limit=limit,
            total=found.total,
            total_pages=math.ceil(found.total / limit),
        ),
        filters=SearchFiltersOut(**asdict(filters)),
    )
