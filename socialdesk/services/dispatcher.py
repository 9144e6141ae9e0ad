from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from socialdesk.models import ScheduledPost
from socialdesk.logging_setup import log_event
from socialdesk.services.credentials import get_page
from socialdesk.services.publisher import PublishError, publish_post, post_comment

PAGE_MISSING_ERROR = "Facebook page not found or access token missing"


def _utcnow():
    return datetime.now(timezone.utc)


def find_due_post_ids(db: Session, now: datetime) -> list[str]:
    stmt = (
        select(ScheduledPost.id)
        .where(ScheduledPost.status == "scheduled")
        .where(ScheduledPost.scheduled_for <= now)
        .order_by(ScheduledPost.scheduled_for.asc())
    )
    return list(db.execute(stmt).scalars().all())


def claim_post(db: Session, post_id: str) -> bool:
    """
    scheduled -> processing, only if nobody else got there first.
    A second pass racing on the same row sees rowcount 0 and skips it.
    """
    result = db.execute(
        update(ScheduledPost)
        .where(ScheduledPost.id == post_id, ScheduledPost.status == "scheduled")
        .values(status="processing")
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def _finish(db: Session, post_id: str, **values):
    db.execute(
        update(ScheduledPost)
        .where(ScheduledPost.id == post_id, ScheduledPost.status == "processing")
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.commit()


def build_publish_payload(post: ScheduledPost) -> dict:
    payload = {"post_type": post.post_type, "content": post.content}
    if post.post_type == "carousel" and post.carousel_images:
        payload["carousel_images"] = list(post.carousel_images)
    elif post.media_urls:
        payload["media_url"] = post.media_urls[0]
    return payload


def dispatch_post(db: Session, post_id: str, *, publisher: Callable = publish_post,
                  comment_poster: Callable = post_comment) -> dict:
    """Publishes one due post and records its terminal state."""
    if not claim_post(db, post_id):
        log_event("dispatch_skip_claimed", post_id=post_id)
        return {"post_id": post_id, "status": "skipped", "error": "Post was claimed by another dispatch pass"}

    post = db.get(ScheduledPost, post_id, populate_existing=True)
    if post is None:
        log_event("dispatch_skip_deleted", post_id=post_id)
        return {"post_id": post_id, "status": "skipped", "error": "Post was deleted before publishing"}

    # Copied up front so later commits never lazy-load a row that may be gone
    page_id = post.page_id
    payload = build_publish_payload(post)
    first_comment = (post.first_comment or "").strip() if post.post_first_comment else ""
    db.expunge(post)

    try:
        page = get_page(db, page_id)
        if page is None or not page.access_token:
            raise PublishError(PAGE_MISSING_ERROR, status_code=404, step="credentials")
        access_token = page.access_token

        result = publisher(page_id=page_id, access_token=access_token, **payload)
        remote_id = result.get("post_id")

        if first_comment:
            try:
                comment_poster(post_id=remote_id, message=first_comment, access_token=access_token)
            except Exception as e:
                # Comment failures never fail the post itself
                log_event("dispatch_comment_fail", level="warning", post_id=post_id, remote_id=remote_id, error=str(e))

    except Exception as e:
        db.rollback()
        error_message = str(e) or "Unknown error"
        _finish(db, post_id, status="failed", error_message=error_message)
        log_event("dispatch_post_fail", level="error", post_id=post_id, page_id=page_id, error=error_message)
        return {"post_id": post_id, "status": "failed", "error": error_message}

    _finish(db, post_id, status="posted", posted_at=_utcnow(), facebook_post_id=remote_id, error_message=None)
    log_event("dispatch_post_success", post_id=post_id, page_id=page_id, remote_id=remote_id)
    return {"post_id": post_id, "status": "success", "facebook_post_id": remote_id}


def dispatch_due_posts(db_factory: Callable[[], Session], *, now: datetime | None = None,
                       publisher: Callable = publish_post, comment_poster: Callable = post_comment) -> dict:
    """
    One dispatch pass: every post with status=scheduled and scheduled_for <= now
    ends up posted, failed or skipped. Posts are handled one after another and
    a failure on one never stops the others.
    """
    db = db_factory()
    try:
        now = now or _utcnow()
        due_ids = find_due_post_ids(db, now)
        if due_ids:
            log_event("dispatch_pass_start", due=len(due_ids))

        results = []
        for post_id in due_ids:
            try:
                results.append(dispatch_post(db, post_id, publisher=publisher, comment_poster=comment_poster))
            except SQLAlchemyError as e:
                db.rollback()
                log_event("dispatch_post_db_error", level="error", post_id=post_id, error=str(e))
                results.append({"post_id": post_id, "status": "skipped", "error": str(e)})

        return {
            "message": f"Processed {len(due_ids)} scheduled posts",
            "due": len(due_ids),
            "results": results,
        }
    finally:
        db.close()


def preview_due_posts(db: Session, now: datetime | None = None) -> list[dict]:
    """Read-only view of what the next pass would pick up."""
    now = now or _utcnow()
    stmt = (
        select(ScheduledPost)
        .where(ScheduledPost.status == "scheduled")
        .where(ScheduledPost.scheduled_for <= now)
        .order_by(ScheduledPost.scheduled_for.asc())
    )
    return [
        {"id": p.id, "title": p.title, "scheduledFor": p.scheduled_for, "status": p.status}
        for p in db.execute(stmt).scalars().all()
    ]
