"""Celery Beat periodic task schedules.

Scheduled tasks:
- poll_trams: every POLL_INTERVAL_SECONDS - evaluate approach alerts
- cleanup_notification_history: daily - prune dedup history
- send_morning_notifications: daily at MORNING_NOTIFICATION_HOUR:MINUTE local time
"""

from app.celery.app import celery_app
from app.core.config import settings
from celery.schedules import crontab, schedule

HISTORY_CLEANUP_INTERVAL = 86400.0  # 24 hours

celery_app.conf.beat_schedule = {
    "poll-trams": {
        "task": "app.celery.tasks.poll_trams",
        "schedule": schedule(run_every=settings.POLL_INTERVAL_SECONDS),
        "options": {
            # Expire before the next tick is due
            "expires": settings.POLL_INTERVAL_SECONDS,
        },
    },
    "cleanup-notification-history": {
        "task": "app.celery.tasks.cleanup_notification_history",
        "schedule": schedule(run_every=HISTORY_CLEANUP_INTERVAL),
        "options": {
            "expires": 3600,
        },
    },
    "send-morning-notifications": {
        "task": "app.celery.tasks.send_morning_notifications",
        "schedule": crontab(
            hour=settings.MORNING_NOTIFICATION_HOUR,
            minute=settings.MORNING_NOTIFICATION_MINUTE,
        ),
        "options": {
            "expires": 300,
        },
    },
}
