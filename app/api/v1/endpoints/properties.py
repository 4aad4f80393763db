from fastapi import APIRouter, Depends, Query

from app.api.v1.deps import get_similarity_retriever
from app.schemas.listing import SimilarListingsOut
from app.services.listings import similar_listing_out
from app.services.similarity import DEFAULT_K, SimilarityRetriever

router = APIRouter()


@router.get("/properties/{listing_id}/similar", response_model=SimilarListingsOut)
async def similar_properties(
    listing_id: str,
    # out-of-range values are clamped to [1, 12] rather than rejected
    limit: int = Query(default=DEFAULT_K),
    retriever: SimilarityRetriever = Depends(get_similarity_retriever),
) -> SimilarListingsOut:
    results = await retriever.find_similar(listing_id, limit)
    return SimilarListingsOut(properties=[similar_listing_out(r) for r in results])
