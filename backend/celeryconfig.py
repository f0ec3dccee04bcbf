"""
Celery configuration for the case ingestion worker.

Loaded by `celery_app.config_from_object("celeryconfig")` in casesync/tasks/__init__.py.
Broker/result-backend URLs and the cycle interval come from the same
settings object as the rest of the service.
"""

from casesync.core.config import settings

# ═══════════════════════════════════════════════════════════
#  Broker & Result Backend
# ═══════════════════════════════════════════════════════════

broker_url = settings.CELERY_BROKER_URL
result_backend = settings.CELERY_RESULT_BACKEND

# ═══════════════════════════════════════════════════════════
#  Serialization
# ═══════════════════════════════════════════════════════════

task_serializer = "json"
result_serializer = "json"
accept_content = ["json"]

# ═══════════════════════════════════════════════════════════
#  Timezone
# ═══════════════════════════════════════════════════════════

timezone = "UTC"
enable_utc = True

# ═══════════════════════════════════════════════════════════
#  Task Execution
# ═══════════════════════════════════════════════════════════

# A cycle holds the advisory lock; a redelivered task would just hit it.
task_acks_late = False

# One cycle at a time per worker process
worker_prefetch_multiplier = 1

# No time limits: a cycle is bounded by the advisory lock window, not by Celery.
task_soft_time_limit = None
task_time_limit = None

# ═══════════════════════════════════════════════════════════
#  Result Expiry
# ═══════════════════════════════════════════════════════════

result_expires = 86400

# ═══════════════════════════════════════════════════════════
#  Worker Settings
# ═══════════════════════════════════════════════════════════

worker_max_tasks_per_child = 50

worker_send_task_events = False
task_send_sent_event = False

# ═══════════════════════════════════════════════════════════
#  Task Routes
# ═══════════════════════════════════════════════════════════

task_routes = {
    "casesync.tasks.ingestion_tasks.*": {"queue": "ingestion"},
}

task_default_queue = "ingestion"

# ═══════════════════════════════════════════════════════════
#  Beat Schedule (periodic tasks)
# ═══════════════════════════════════════════════════════════
# Run alongside the worker:
#   celery -A casesync.tasks beat

beat_schedule = {
    "run-ingestion-cycle": {
        "task": "casesync.tasks.ingestion_tasks.run_ingestion_cycle",
        "schedule": settings.CYCLE_INTERVAL_SECONDS,
    },
}
