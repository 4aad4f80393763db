from app.models.base import Base  # noqa: F401

from app.models.agent import Agent  # noqa: F401
from app.models.api_key import ApiKey  # noqa: F401
from app.models.listing import Listing  # noqa: F401
