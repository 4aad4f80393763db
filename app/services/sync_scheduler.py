import logging

from worker.celery_app import celery

log = logging.getLogger(__name__)

SYNC_TASK_NAME = "worker.tasks.sync_listing_embedding"


class CelerySyncScheduler:
    """Enqueues an embedding sync. A failed enqueue is only logged: the sweep finds the listing later."""

    def schedule(self, listing_id: str) -> None:
        try:
            celery.send_task(SYNC_TASK_NAME, args=[listing_id], queue="embeddings")
        except Exception:
            log.exception("enqueue of embedding sync failed for listing %s", listing_id)
