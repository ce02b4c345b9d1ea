from celery import Celery
from webcare.core.config import settings

celery_app = Celery("worker", broker=settings.REDIS_URL, backend=settings.REDIS_URL)

celery_app.conf.update(task_track_started=True)

# Configure Celery Beat schedule
celery_app.conf.beat_schedule = {
    'sync-all-websites': {
        'task': 'webcare.tasks.sync.sync_all_websites_task',
        'schedule': settings.AUTO_SYNC_INTERVAL_SECONDS,
    },
}
celery_app.conf.timezone = settings.TIMEZONE

# Import tasks to register them
from webcare.tasks import sync  # noqa
