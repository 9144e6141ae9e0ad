from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ..db import get_db
from ..security import require_cron_key
from ..services.dispatcher import preview_due_posts
from ..services.scheduler import PostScheduler

router = APIRouter(tags=["scheduler"])


def get_scheduler(request: Request) -> PostScheduler:
    sched = getattr(request.app.state, "scheduler", None)
    if sched is None:
        raise HTTPException(status_code=503, detail="Scheduler is not configured")
    return sched


@router.post("/cron/process-scheduled-posts", dependencies=[Depends(require_cron_key)])
def process_scheduled_posts(sched: PostScheduler = Depends(get_scheduler)):
    summary = sched.run_once()
    if summary is None:
        return {"skipped": True, "message": "A dispatch pass is already running"}
    return summary


@router.get("/cron/process-scheduled-posts", dependencies=[Depends(require_cron_key)])
def preview_scheduled_posts(db: Session = Depends(get_db)):
    due = preview_due_posts(db)
    return {"message": f"{len(due)} scheduled posts are due", "due": len(due), "posts": due}


@router.get("/scheduler")
def scheduler_status(sched: PostScheduler = Depends(get_scheduler)):
    return sched.status()


@router.post("/scheduler")
def start_scheduler(sched: PostScheduler = Depends(get_scheduler)):
    started = sched.start()
    return {"message": "Scheduler started" if started else "Scheduler already running", **sched.status()}


@router.delete("/scheduler")
def stop_scheduler(sched: PostScheduler = Depends(get_scheduler)):
    stopped = sched.stop()
    return {"message": "Scheduler stopped" if stopped else "Scheduler was not running", **sched.status()}
