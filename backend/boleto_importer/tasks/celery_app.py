from __future__ import annotations

from celery import Celery
from celery.signals import setup_logging, worker_process_shutdown

from boleto_importer.config import configure_logging, settings

celery_app = Celery(
    "boleto_importer",
    broker=settings.REDIS_URL,
    include=["boleto_importer.tasks.import_tasks"],
)
celery_app.conf.update(
    result_backend=settings.REDIS_URL,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # One import at a time per worker; rows fan out inside the task.
    worker_concurrency=1,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
)


@worker_process_shutdown.connect
def on_worker_process_shutdown(**kwargs):  # type: ignore[no-untyped-def]
    """Close the worker-wide issuer client and event loop."""
    from boleto_importer.tasks.import_tasks import shutdown_worker_resources

    shutdown_worker_resources()


@setup_logging.connect
def on_setup_logging(**kwargs):  # type: ignore[no-untyped-def]
    """Use LOG_LEVEL and the application format instead of Celery's defaults."""
    configure_logging()
