import uuid

AGENT_PREFIX = "agt"
API_KEY_PREFIX = "key"
LISTING_PREFIX = "lst"


def gen_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"
