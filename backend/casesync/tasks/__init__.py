"""
Celery application factory.
"""

from celery import Celery
from celery.signals import worker_process_init

from casesync.core.logging import setup_logging

celery_app = Celery("casesync", include=["casesync.tasks.ingestion_tasks"])
celery_app.config_from_object("celeryconfig")


@worker_process_init.connect
def _configure_worker_logging(**kwargs) -> None:
    setup_logging()
