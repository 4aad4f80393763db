from __future__ import annotations

from enum import Enum


class ListingStatus(str, Enum):
    DRAFT = "draft"
    AVAILABLE = "available"
    RESERVED = "reserved"
    UNLISTED = "unlisted"
    CLOSED = "closed"


class Transition(str, Enum):
    PUBLISH = "publish"
    UNLIST = "unlist"
    RESERVE = "reserve"
    RELEASE = "release"
    CLOSE = "close"


# (transition, from) -> to. Anything not listed here is illegal; closed has no way out.
TRANSITIONS: dict[tuple[Transition, ListingStatus], ListingStatus] = {
    (Transition.PUBLISH, ListingStatus.DRAFT): ListingStatus.AVAILABLE,
    (Transition.PUBLISH, ListingStatus.UNLISTED): ListingStatus.AVAILABLE,
    (Transition.UNLIST, ListingStatus.AVAILABLE): ListingStatus.UNLISTED,
    (Transition.UNLIST, ListingStatus.RESERVED): ListingStatus.UNLISTED,
    (Transition.RESERVE, ListingStatus.AVAILABLE): ListingStatus.RESERVED,
    (Transition.RELEASE, ListingStatus.RESERVED): ListingStatus.AVAILABLE,
    (Transition.CLOSE, ListingStatus.AVAILABLE): ListingStatus.CLOSED,
    (Transition.CLOSE, ListingStatus.RESERVED): ListingStatus.CLOSED,
}

# publish gate; checked in Python before a publish and again in the WHERE clause of its CAS
MIN_TITLE_LENGTH = 10
MIN_DESCRIPTION_LENGTH = 50

# statuses whose content is kept vectorized (drafts wait for first publish, closed is terminal)
EMBEDDABLE_STATUSES = (ListingStatus.AVAILABLE, ListingStatus.RESERVED, ListingStatus.UNLISTED)


def target_status(transition: Transition, current: ListingStatus) -> ListingStatus | None:
    return TRANSITIONS.get((transition, current))


def is_retrievable(status: ListingStatus) -> bool:
    return status == ListingStatus.AVAILABLE


def is_embeddable(status: ListingStatus) -> bool:
    return status in EMBEDDABLE_STATUSES
