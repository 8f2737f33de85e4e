"""Celery task definitions.

The request path removes its chunk directory in a ``finally`` block, but a
crash of the process (or an error raised before the pipeline runs) can still
leave ``UPLOADS_DIR/temp/<uuid>`` directories behind.  The periodic
``purge_stale_chunk_dirs`` task sweeps them.

Run with::

    celery -A lifelog.workers.tasks worker --beat --loglevel=info
"""

import logging
import shutil
import time
from pathlib import Path

from celery import Celery, Task

from lifelog.config import settings
from lifelog.logging_config import setup_logging as setup_app_logging
from lifelog.utils.storage import TEMP_SUBDIR

# --- Logger Setup ---
# Ensure app-level logging is configured when a worker starts.
setup_app_logging()
logger = logging.getLogger(__name__)


# --- Celery Application Setup ---
celery_app = Celery(
    "lifelog",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["lifelog.workers.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    beat_schedule={
        "purge-stale-chunk-dirs": {
            "task": "purge_stale_chunk_dirs",
            "schedule": 3600.0,
        },
    },
)


class LoggedTask(Task):
    """Base Celery Task that logs calls, failures and results."""
    abstract = True

    def __call__(self, *args, **kwargs):
        logger.info(f"Task {self.name} [{self.request.id}] called with args: {args}, kwargs: {kwargs}")
        return super().__call__(*args, **kwargs)

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error(f"Task {self.name} [{task_id}] failed: {exc}", exc_info=einfo)
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_success(self, retval, task_id, args, kwargs):
        logger.info(f"Task {self.name} [{task_id}] completed successfully. Result: {retval}")
        super().on_success(retval, task_id, args, kwargs)


@celery_app.task(name="purge_stale_chunk_dirs", base=LoggedTask)
def purge_stale_chunk_dirs(max_age_hours: float | None = None, uploads_dir: str | None = None) -> dict:
    """Delete chunk directories under ``UPLOADS_DIR/temp`` older than ``max_age_hours``."""
    max_age_hours = settings.TEMP_CHUNK_MAX_AGE_HOURS if max_age_hours is None else max_age_hours
    temp_root = Path(uploads_dir or settings.UPLOADS_DIR) / TEMP_SUBDIR
    if not temp_root.is_dir():
        logger.info(f"No temp directory at {temp_root}, nothing to purge.")
        return {"removed": [], "kept": 0}

    cutoff = time.time() - max_age_hours * 3600
    removed: list[str] = []
    kept = 0
    for entry in temp_root.iterdir():
        if not entry.is_dir():
            continue
        if entry.stat().st_mtime >= cutoff:
            kept += 1
            continue
        try:
            shutil.rmtree(entry)
        except OSError as e:
            logger.error(f"Failed to remove stale chunk directory {entry}: {e}")
            continue
        removed.append(entry.name)
        logger.info(f"Removed stale chunk directory {entry}")

    logger.info(f"Chunk directory sweep finished: removed {len(removed)}, kept {kept}.")
    return {"removed": removed, "kept": kept}
