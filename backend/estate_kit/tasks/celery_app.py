"""
Celery application configuration for periodic maintenance
"""

from celery import Celery
from celery.schedules import crontab
from estate_kit.core.config import settings

# Create Celery app instance
celery_app = Celery(
    'estate_kit',
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=['estate_kit.tasks.maintenance_tasks'],
)

# Load configuration
celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_track_started=True,
    task_time_limit=10 * 60,  # 10 minutes hard limit
    task_soft_time_limit=8 * 60,  # 8 minutes soft limit
)

# Beat schedule for periodic tasks
celery_app.conf.beat_schedule = {
    'cleanup-expired-sessions': {
        'task': 'estate_kit.tasks.maintenance_tasks.cleanup_expired_sessions',
        'schedule': float(settings.SESSION_CLEANUP_INTERVAL_SECONDS),
    },
    'expire-overdue-delegates-hourly': {
        'task': 'estate_kit.tasks.maintenance_tasks.expire_overdue_delegates',
        'schedule': crontab(minute=0),  # Run every hour
    },
}
