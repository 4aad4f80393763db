import hashlib

from app.services.embedding_text import ListingContent
from app.services.errors import ProviderError

DIMENSIONS = 1536


class FakeEmbeddingProvider:
    """Bag-of-words hashing into 1536 buckets: deterministic, and similar texts give similar vectors."""

    def __init__(self, dimensions: int = DIMENSIONS):
        self.dimensions = dimensions
        self.calls: list[str] = []
        self.fail_with: ProviderError | None = None

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail_with is not None:
            raise self.fail_with
        vector = [0.0] * self.dimensions
        for word in text.split():
            idx = int(hashlib.sha256(word.encode("utf-8")).hexdigest(), 16) % self.dimensions
            vector[idx] += 1.0
        return vector


class RecordingScheduler:
    def __init__(self):
        self.scheduled: list[str] = []

    def schedule(self, listing_id: str) -> None:
        self.scheduled.append(listing_id)


VALID_CONTENT = ListingContent(
    title="Sunny two bedroom condo in Makati",
    property_type="CONDO",
    transaction_type="SALE",
    description="Bright corner unit with city views, walking distance to malls and offices.",
    province="Metro Manila",
    city="Makati",
    district="Poblacion",
    bedrooms=2,
    bathrooms=1,
    features=("balcony", "pool", "gym"),
)
