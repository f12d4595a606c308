# scheduler/tasks.py
import asyncio
import logging

from celery import shared_task

from services.library_notifications.app import build_pipeline
from services.library_notifications.pipeline import NotificationPipeline, RunSummary

logger = logging.getLogger("scheduler")


async def run_once(pipeline: NotificationPipeline) -> RunSummary:
    try:
        return await pipeline.run()
    finally:
        await pipeline.aclose()


@shared_task
def send_library_notifications():
    """
    Periodic task: checks every active loan and sends overdue and
    due-soon reminders. Returns the run summary for the result backend.
    """
    summary = asyncio.run(run_once(build_pipeline()))
    logger.info("Library notification run finished: %s", summary.to_response())
    return summary.to_response()
