from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..db import get_db
from ..schemas import FacebookPostIn, FacebookReelIn, FacebookCommentIn
from ..services.credentials import get_page
from ..services.publisher import (
    PublishError, publish_post, publish_reel, post_comment, check_connectivity, get_reel_status,
    classify_reel_error, graph_url,
)
from ..logging_setup import log_event

router = APIRouter(tags=["facebook"])


def _page_token(db: Session, page_id: str | None) -> str:
    if not page_id:
        raise HTTPException(status_code=400, detail="Page ID is required")
    page = get_page(db, page_id)
    if page is None or not page.access_token:
        raise HTTPException(status_code=404, detail="Facebook page not found or access token missing")
    return page.access_token


@router.post("/facebook-post")
def facebook_post(payload: FacebookPostIn, db: Session = Depends(get_db)):
    if not payload.post_type:
        raise HTTPException(status_code=400, detail="Post type is required")
    access_token = _page_token(db, payload.page_id)
    try:
        result = publish_post(
            page_id=payload.page_id,
            access_token=access_token,
            post_type=payload.post_type,
            content=payload.content,
            media_url=payload.media_url,
            carousel_images=payload.carousel_images,
        )
    except PublishError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {"success": True, "postId": result["post_id"]}


@router.post("/facebook-reel")
def facebook_reel(payload: FacebookReelIn, db: Session = Depends(get_db)):
    access_token = _page_token(db, payload.page_id)
    try:
        result = publish_reel(
            page_id=payload.page_id,
            access_token=access_token,
            content=payload.content,
            media_url=payload.media_url,
        )
    except PublishError as e:
        if e.status_code == 400:
            raise HTTPException(status_code=400, detail=e.message)
        status_code, error_type, suggestion = classify_reel_error(e.message)
        log_event("fb_reel_fail", level="error", page_id=payload.page_id, step=e.step, error=e.message)
        body = {"error": e.message}
        if error_type:
            body["type"] = error_type
            body["suggestion"] = suggestion
        return JSONResponse(status_code=status_code, content=body)

    return {
        "success": True,
        "postId": result["post_id"],
        "videoId": result["video_id"],
        "message": "Reel uploaded successfully. Facebook may take a while to finish processing it.",
    }


@router.get("/facebook-reel")
def facebook_reel_check(test: str | None = None, reel_id: str | None = None, page_id: str | None = None,
                        db: Session = Depends(get_db)):
    if test == "connectivity":
        reachable = check_connectivity()
        return {"connected": reachable, "endpoint": graph_url()}

    if test == "status":
        if not reel_id:
            raise HTTPException(status_code=400, detail="Reel ID is required")
        access_token = _page_token(db, page_id)
        try:
            return get_reel_status(reel_id, access_token)
        except PublishError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)

    raise HTTPException(status_code=400, detail="Unknown test. Use 'connectivity' or 'status'")


@router.post("/facebook-comment")
def facebook_comment(payload: FacebookCommentIn, db: Session = Depends(get_db)):
    if not payload.post_id or not payload.message:
        raise HTTPException(status_code=400, detail="Post ID and message are required")
    access_token = payload.access_token or _page_token(db, payload.page_id)
    try:
        comment_id = post_comment(post_id=payload.post_id, message=payload.message, access_token=access_token)
    except PublishError as e:
        raise HTTPException(status_code=e.status_code if e.status_code >= 400 else 500, detail=e.message)
    return {"success": True, "commentId": comment_id}
