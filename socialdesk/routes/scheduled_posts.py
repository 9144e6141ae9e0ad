from datetime import datetime, timedelta, timezone

import pytz
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select, update, delete
from sqlalchemy.orm import Session

from ..db import get_db
from ..config import settings
from ..models import ScheduledPost, POST_STATUSES
from ..schemas import (
    ScheduledPostCreate, ScheduledPostUpdate, ScheduledPostOut, BulkActionIn, BatchScheduleIn, check_post_media,
)
from ..logging_setup import log_event

router = APIRouter(prefix="/scheduled-posts", tags=["scheduled-posts"])
debug_router = APIRouter(prefix="/debug", tags=["debug"])

BULK_ACTIONS = ("stop_automation", "delete_all", "delete_all_posts", "disable_recurring")
# Never cleared by a partial update
REQUIRED_FIELDS = ("title", "post_type", "page_id", "scheduled_for", "media_urls", "carousel_images",
                   "is_recurring", "post_first_comment", "status")


def _utcnow():
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """Naive datetimes are read in the configured timezone; everything is stored as UTC."""
    if value.tzinfo is None:
        value = pytz.timezone(settings.timezone).localize(value)
    return value.astimezone(pytz.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@router.post("", response_model=ScheduledPostOut, status_code=201)
def create_scheduled_post(payload: ScheduledPostCreate, db: Session = Depends(get_db)):
    data = payload.model_dump()
    data["scheduled_for"] = to_utc(payload.scheduled_for)
    if not payload.is_recurring:
        data["interval_minutes"] = None

    post = ScheduledPost(**data)
    db.add(post)
    db.commit()
    db.refresh(post)
    log_event("scheduled_post_created", post_id=post.id, page_id=post.page_id, post_type=post.post_type)
    return post


@router.get("", response_model=list[ScheduledPostOut])
def list_scheduled_posts(status: str | None = None, page_id: str | None = None, db: Session = Depends(get_db)):
    stmt = select(ScheduledPost).order_by(ScheduledPost.created_at.desc())
    if status:
        if status not in POST_STATUSES:
            raise HTTPException(status_code=400, detail=f"Invalid status '{status}'")
        stmt = stmt.where(ScheduledPost.status == status)
    if page_id:
        stmt = stmt.where(ScheduledPost.page_id == page_id)
    return db.execute(stmt).scalars().all()


@router.put("", response_model=ScheduledPostOut)
def update_scheduled_post(payload: ScheduledPostUpdate, db: Session = Depends(get_db)):
    post = db.get(ScheduledPost, payload.id)
    if not post:
        raise HTTPException(status_code=404, detail="Scheduled post not found")
    if post.status == "processing":
        raise HTTPException(status_code=409, detail="Post is being published and cannot be edited")

    data = payload.model_dump(exclude_unset=True, exclude={"id"})
    new_status = data.get("status")
    # posted, failed and cancelled are terminal
    if new_status is not None and new_status != post.status and post.status != "scheduled":
        raise HTTPException(status_code=409, detail=f"A {post.status} post cannot be moved back to {new_status}")
    if data.get("scheduled_for") is not None:
        data["scheduled_for"] = to_utc(data["scheduled_for"])

    changes = {k: v for k, v in data.items() if v is not None or k not in REQUIRED_FIELDS}
    merged = {k: getattr(post, k) for k in ("post_type", "content", "media_urls", "carousel_images",
                                            "is_recurring", "interval_minutes")}
    merged.update(changes)
    try:
        check_post_media(merged["post_type"], merged["content"], merged["media_urls"], merged["carousel_images"])
        if merged["is_recurring"] and (not merged["interval_minutes"] or merged["interval_minutes"] <= 0):
            raise ValueError("Recurring posts need a positive interval in minutes")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not merged["is_recurring"]:
        changes["interval_minutes"] = None

    if not changes:
        return post

    # Conditional on the status we read, so a concurrent claim wins
    result = db.execute(
        update(ScheduledPost)
        .where(ScheduledPost.id == post.id, ScheduledPost.status == post.status)
        .values(**changes)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise HTTPException(status_code=409, detail="Post is being published and cannot be edited")
    db.commit()
    db.refresh(post)
    log_event("scheduled_post_updated", post_id=post.id, fields=sorted(data))
    return post


@router.delete("")
def delete_scheduled_post(id: str | None = None, db: Session = Depends(get_db)):
    if not id:
        raise HTTPException(status_code=400, detail="Post ID is required")
    post = db.get(ScheduledPost, id)
    if not post:
        raise HTTPException(status_code=404, detail="Scheduled post not found")
    db.delete(post)
    db.commit()
    log_event("scheduled_post_deleted", post_id=id)
    return {"success": True}


@router.post("/bulk")
def bulk_action(payload: BulkActionIn, db: Session = Depends(get_db)):
    if payload.action not in BULK_ACTIONS:
        raise HTTPException(status_code=400, detail=f"Invalid action. Use one of: {', '.join(BULK_ACTIONS)}")

    conditions = []
    if payload.page_id and payload.page_id != "all":
        conditions.append(ScheduledPost.page_id == payload.page_id)

    if payload.action == "stop_automation":
        stmt = update(ScheduledPost).where(ScheduledPost.status == "scheduled", *conditions).values(status="cancelled")
        message = "Cancelled {n} scheduled posts"
    elif payload.action == "delete_all":
        stmt = delete(ScheduledPost).where(ScheduledPost.status == "scheduled", *conditions)
        message = "Deleted {n} scheduled posts"
    elif payload.action == "delete_all_posts":
        stmt = delete(ScheduledPost).where(*conditions)
        message = "Deleted {n} posts"
    else:
        stmt = (
            update(ScheduledPost)
            .where(ScheduledPost.is_recurring.is_(True), *conditions)
            .values(is_recurring=False, interval_minutes=None)
        )
        message = "Disabled recurrence on {n} posts"

    count = db.execute(stmt.execution_options(synchronize_session=False)).rowcount
    db.commit()
    log_event("scheduled_posts_bulk", action=payload.action, page_id=payload.page_id, count=count)
    return {"success": True, "message": message.format(n=count), "count": count}


@router.post("/batch", response_model=list[ScheduledPostOut])
def batch_schedule(payload: BatchScheduleIn, db: Session = Depends(get_db)):
    """One post per media URL, each interval_minutes after the previous one."""
    start_at = to_utc(payload.start_at)
    media_urls = [u.strip() for u in payload.media_urls if u and u.strip()]

    posts = []
    for i, media_url in enumerate(media_urls):
        post = ScheduledPost(
            title=f"{payload.title} #{i + 1}" if len(media_urls) > 1 else payload.title,
            content=payload.content,
            post_type=payload.post_type,
            media_urls=[media_url],
            carousel_images=[],
            page_id=payload.page_id,
            page_name=payload.page_name,
            scheduled_for=start_at + timedelta(minutes=payload.interval_minutes * i),
            interval_minutes=payload.interval_minutes,
            is_recurring=True,
            first_comment=payload.first_comment,
            post_first_comment=payload.post_first_comment,
            status="scheduled",
        )
        db.add(post)
        posts.append(post)

    db.commit()
    for post in posts:
        db.refresh(post)
    log_event("scheduled_posts_batch", page_id=payload.page_id, count=len(posts))
    return posts


@debug_router.get("/scheduled-posts")
def debug_scheduled_posts(db: Session = Depends(get_db)):
    now = _utcnow()
    stmt = select(ScheduledPost).order_by(ScheduledPost.created_at.desc()).limit(10)
    posts = db.execute(stmt).scalars().all()
    return {
        "now": now.isoformat(),
        "count": len(posts),
        "posts": [
            {
                "id": p.id,
                "title": p.title,
                "status": p.status,
                "postType": p.post_type,
                "scheduledFor": _as_utc(p.scheduled_for).isoformat(),
                "isDue": p.status == "scheduled" and _as_utc(p.scheduled_for) <= now,
                "errorMessage": p.error_message,
            }
            for p in posts
        ],
    }
