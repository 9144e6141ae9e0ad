import threading
import uuid
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.orm import Session

from socialdesk.config import settings
from socialdesk.logging_setup import log_event, pass_id_var
from socialdesk.services.dispatcher import dispatch_due_posts

JOB_ID = "check_due_posts"


class PostScheduler:
    """
    Periodic dispatch trigger. The background job and manual run_once calls
    share one lock, so at most one dispatch pass runs per process.
    """

    def __init__(self, db_factory: Callable[[], Session], interval_seconds: int | None = None,
                 dispatch: Callable = dispatch_due_posts):
        self.db_factory = db_factory
        self.interval_seconds = interval_seconds or settings.scheduler_interval_seconds
        self._dispatch = dispatch
        self._lock = threading.Lock()
        self._sched: BackgroundScheduler | None = None

    def is_running(self) -> bool:
        return self._sched is not None and self._sched.running

    def start(self) -> bool:
        """Returns False when already running."""
        if self.is_running():
            return False
        sched = BackgroundScheduler(timezone="UTC")
        sched.add_job(
            self._tick,
            trigger="interval",
            seconds=self.interval_seconds,
            id=JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        sched.start()
        self._sched = sched
        log_event("scheduler_started", interval_seconds=self.interval_seconds)
        return True

    def stop(self) -> bool:
        if not self.is_running():
            return False
        self._sched.shutdown(wait=False)
        self._sched = None
        log_event("scheduler_stopped")
        return True

    def run_once(self) -> dict | None:
        """Runs one dispatch pass now. None means a pass was already in flight."""
        if not self._lock.acquire(blocking=False):
            log_event("dispatch_pass_skipped", reason="already_running")
            return None
        token = pass_id_var.set(uuid.uuid4().hex[:12])
        try:
            return self._dispatch(self.db_factory)
        finally:
            pass_id_var.reset(token)
            self._lock.release()

    def _tick(self):
        try:
            summary = self.run_once()
        except Exception as e:
            log_event("dispatch_pass_error", level="error", error=str(e))
            return
        if summary and summary["due"]:
            log_event("dispatch_pass_done", due=summary["due"])

    def status(self) -> dict:
        next_run = None
        if self.is_running():
            job = self._sched.get_job(JOB_ID)
            if job and job.next_run_time:
                next_run = job.next_run_time.isoformat()
        return {
            "running": self.is_running(),
            "intervalSeconds": self.interval_seconds,
            "nextRunAt": next_run,
        }
