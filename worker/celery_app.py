from celery import Celery
from app.core.config import settings

celery = Celery(
    "listing-worker",
    broker=settings.rabbitmq_url,
    backend=settings.redis_url,
    include=["worker.tasks"],
)

celery.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_routes={
        "worker.tasks.sync_listing_embedding": {"queue": "embeddings"},
    },
)
