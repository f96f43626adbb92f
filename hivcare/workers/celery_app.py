from celery import Celery
from hivcare.core.config import settings

# Create Celery app
celery_app = Celery(
    "hivcare",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["hivcare.workers.tasks"]
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Worker settings
    worker_prefetch_multiplier=1,
    task_acks_late=True,

    task_routes={
        "hivcare.workers.tasks.*": {"queue": "payments"},
    },

    # Beat schedule (periodic tasks)
    beat_schedule={
        "poll-pending-payments": {
            "task": "hivcare.workers.tasks.poll_pending_payments",
            "schedule": float(settings.PAYMENT_POLL_INTERVAL_SECONDS),
        },
        "expire-stale-payments": {
            "task": "hivcare.workers.tasks.expire_stale_payments",
            "schedule": 300.0,
        },
    },

    result_expires=3600,  # 1 hour
    broker_connection_retry_on_startup=True,
)


if __name__ == "__main__":
    celery_app.start()
