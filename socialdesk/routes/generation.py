from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..db import get_db
from ..schemas import GenerateCaptionIn, GeneratePromptIn, GenerateTextPostsIn, AutoCaptionIn, ApiKeyIn
from ..services.credentials import resolve_gemini_key
from ..services import generator
from ..services.generator import GenerationError

router = APIRouter(tags=["generation"])


def _api_key(db: Session, explicit: str | None) -> str:
    api_key = resolve_gemini_key(db, explicit)
    if not api_key:
        raise HTTPException(status_code=400, detail="API key is required")
    return api_key


@router.post("/generate-caption")
def generate_caption(payload: GenerateCaptionIn, db: Session = Depends(get_db)):
    api_key = _api_key(db, payload.api_key)
    try:
        return generator.generate_captions(
            api_key=api_key,
            platform=payload.platform,
            topic=payload.topic,
            post_type=payload.post_type,
            caption_count=payload.caption_count,
            generate_comments=payload.generate_comments,
            include_link=payload.include_link,
            link_url=payload.link_url,
            specific_caption=payload.specific_caption,
        )
    except GenerationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/generate-prompt")
def generate_prompt(payload: GeneratePromptIn, db: Session = Depends(get_db)):
    api_key = _api_key(db, payload.api_key)
    try:
        prompts = generator.generate_prompts(
            api_key=api_key,
            prompt_type=payload.prompt_type,
            style=payload.style,
            environment=payload.environment,
            theme=payload.theme,
            mood=payload.mood,
            prompt_count=payload.prompt_count,
            additional_details=payload.additional_details,
        )
    except GenerationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {"prompts": prompts}


@router.post("/generate-text-posts")
def generate_text_posts(payload: GenerateTextPostsIn, db: Session = Depends(get_db)):
    api_key = _api_key(db, payload.api_key)
    try:
        texts = generator.generate_text_posts(
            api_key=api_key,
            topic=payload.topic,
            platform=payload.platform,
            reference_link=payload.reference_link,
            count=payload.count,
        )
    except GenerationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {"texts": texts}


@router.post("/auto-caption")
def auto_caption(payload: AutoCaptionIn, db: Session = Depends(get_db)):
    api_key = _api_key(db, payload.api_key)
    try:
        caption = generator.generate_auto_caption(
            api_key=api_key,
            media_url=payload.media_url,
            media_type=payload.media_type,
            is_comment=payload.is_comment,
        )
    except GenerationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {"caption": caption}


@router.post("/test-gemini")
def test_gemini(payload: ApiKeyIn, db: Session = Depends(get_db)):
    api_key = _api_key(db, payload.gemini_api_key or payload.api_key)
    try:
        generator.verify_api_key(api_key)
    except GenerationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {"success": True, "message": "API key is working"}
