import random
from datetime import datetime, timedelta


def compute_backoff_seconds(attempt: int, base: int = 30, cap: int = 3600) -> int:
    # exponential backoff with jitter
    exp = min(cap, base * (2 ** max(0, attempt - 1)))
    jitter = random.randint(0, min(30, exp // 3))
    return exp + jitter


def next_retry_at(attempt: int, *, now: datetime) -> datetime:
    return now + timedelta(seconds=compute_backoff_seconds(attempt))
