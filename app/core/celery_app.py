"""Celery application configuration"""

from celery import Celery
from kombu import Exchange, Queue
from app.core.config import settings

# Create Celery app
celery_app = Celery(
    "referral_ledger",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "app.tasks.referral_tasks",
    ]
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes
    task_soft_time_limit=25 * 60,  # 25 minutes
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    # Task routing
    task_routes={
        "app.tasks.referral_tasks.*": {"queue": "referrals"},
    },

    # Retry configuration
    task_default_retry_delay=60,  # 1 minute
    task_max_retries=3,

    # Result backend configuration
    result_expires=3600,  # 1 hour
)

# Define queues
celery_app.conf.task_queues = (
    Queue("default", Exchange("default"), routing_key="default"),
    Queue("referrals", Exchange("referrals"), routing_key="referrals"),
)

# Beat schedule for periodic tasks
celery_app.conf.beat_schedule = {}

if settings.REFERRAL_EXPIRY_SWEEP_ENABLED:
    celery_app.conf.beat_schedule["expire-lapsed-referrals"] = {
        "task": "expire_lapsed_referrals",
        "schedule": settings.REFERRAL_EXPIRY_SWEEP_INTERVAL_SECONDS,
        "options": {"queue": "referrals"}
    }
