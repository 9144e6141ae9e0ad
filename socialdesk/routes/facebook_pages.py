from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import FacebookPage
from ..schemas import FacebookPageOut, FacebookPagesSyncIn, FacebookPageDeleteIn
from ..services.credentials import upsert_pages
from ..logging_setup import log_event

router = APIRouter(prefix="/facebook-pages", tags=["facebook-pages"])


@router.get("", response_model=list[FacebookPageOut])
def list_pages(db: Session = Depends(get_db)):
    return db.query(FacebookPage).order_by(FacebookPage.name.asc()).all()


@router.post("")
def save_pages(payload: FacebookPagesSyncIn, db: Session = Depends(get_db)):
    """Upserts the pages a user connected. Tokens are stored but never returned."""
    if not isinstance(payload.pages, list):
        raise HTTPException(status_code=400, detail="Pages array is required")

    saved = upsert_pages(db, payload.pages)
    log_event("facebook_pages_saved", received=len(payload.pages), saved=len(saved))
    return {
        "success": True,
        "pages": [FacebookPageOut.model_validate(p).model_dump(by_alias=True, mode="json") for p in saved],
    }


@router.delete("")
def delete_page(payload: FacebookPageDeleteIn, db: Session = Depends(get_db)):
    if not payload.page_id:
        raise HTTPException(status_code=400, detail="Page ID is required")
    page = db.get(FacebookPage, payload.page_id)
    if not page:
        raise HTTPException(status_code=404, detail="Facebook page not found")
    db.delete(page)
    db.commit()
    log_event("facebook_page_deleted", page_id=payload.page_id)
    return {"success": True}
