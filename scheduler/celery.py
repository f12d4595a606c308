# scheduler/celery.py
import os

from celery import Celery
from celery.schedules import crontab

BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
LIBRARY_NOTIFY_HOUR = int(os.getenv("LIBRARY_NOTIFY_HOUR", "8"))
TASK_TIME_LIMIT = int(os.getenv("CELERY_TASK_TIME_LIMIT", "900"))
TASK_SOFT_TIME_LIMIT = int(os.getenv("CELERY_TASK_SOFT_TIME_LIMIT", "840"))

app = Celery("svit_erp", broker=BROKER_URL, include=["scheduler.tasks"])
app.conf.timezone = "UTC"
app.conf.task_time_limit = TASK_TIME_LIMIT
app.conf.task_soft_time_limit = TASK_SOFT_TIME_LIMIT

# Once a day: remind due-soon borrowers and chase overdue ones
app.conf.beat_schedule = {
    "library-notifications-daily": {
        "task": "scheduler.tasks.send_library_notifications",
        "schedule": crontab(hour=LIBRARY_NOTIFY_HOUR, minute=0),
    },
}
