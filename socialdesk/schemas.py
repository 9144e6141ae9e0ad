from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .models import POST_TYPES


class CamelModel(BaseModel):
    """Wire format is camelCase; snake_case names are accepted as well."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def check_post_media(post_type: str, content: str | None, media_urls: list[str] | None, carousel_images: list[str] | None):
    """Raises ValueError when a post could never be published as described."""
    if post_type not in POST_TYPES:
        raise ValueError(f"Invalid post type '{post_type}'. Use one of: {', '.join(POST_TYPES)}")
    if post_type == "text":
        if not (content or "").strip():
            raise ValueError("Content is required for text posts")
    elif post_type == "carousel":
        images = [u for u in (carousel_images or []) if u and u.strip()]
        if len(images) < 2:
            raise ValueError("At least 2 images are required for carousel")
    else:
        if not [u for u in (media_urls or []) if u and u.strip()]:
            raise ValueError(f"A media URL is required for {post_type} posts")


# --- Scheduled posts ---

class ScheduledPostCreate(CamelModel):
    title: str
    content: str | None = None
    post_type: str = "text"
    media_urls: list[str] = Field(default_factory=list)
    carousel_images: list[str] = Field(default_factory=list)
    page_id: str
    page_name: str | None = None
    scheduled_for: datetime
    interval_minutes: int | None = None
    is_recurring: bool = False
    first_comment: str | None = None
    post_first_comment: bool = False
    status: str = "scheduled"

    @model_validator(mode="after")
    def _check(self):
        if not self.title.strip() or not self.page_id.strip():
            raise ValueError("Title, page ID, and scheduled time are required")
        # Only the dispatcher moves a post past scheduled
        if self.status != "scheduled":
            raise ValueError("New posts must have status 'scheduled'")
        check_post_media(self.post_type, self.content, self.media_urls, self.carousel_images)
        if self.is_recurring and (not self.interval_minutes or self.interval_minutes <= 0):
            raise ValueError("Recurring posts need a positive interval in minutes")
        return self


class ScheduledPostUpdate(CamelModel):
    id: str
    title: str | None = None
    content: str | None = None
    post_type: str | None = None
    media_urls: list[str] | None = None
    carousel_images: list[str] | None = None
    page_id: str | None = None
    page_name: str | None = None
    scheduled_for: datetime | None = None
    interval_minutes: int | None = None
    is_recurring: bool | None = None
    first_comment: str | None = None
    post_first_comment: bool | None = None
    status: str | None = None

    @model_validator(mode="after")
    def _check_status(self):
        # Terminal states belong to the dispatcher
        if self.status is not None and self.status not in ("scheduled", "cancelled"):
            raise ValueError("Status can only be set to 'scheduled' or 'cancelled'")
        return self


class ScheduledPostOut(CamelModel):
    id: str
    title: str
    content: str | None = None
    post_type: str
    media_urls: list[str] = Field(default_factory=list)
    carousel_images: list[str] = Field(default_factory=list)
    page_id: str
    page_name: str | None = None
    scheduled_for: datetime
    interval_minutes: int | None = None
    is_recurring: bool = False
    first_comment: str | None = None
    post_first_comment: bool = False
    status: str
    facebook_post_id: str | None = None
    posted_at: datetime | None = None
    error_message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("scheduled_for", "posted_at", "created_at", "updated_at")
    @classmethod
    def _assume_utc(cls, value):
        # SQLite returns naive values; they are stored as UTC
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class BulkActionIn(CamelModel):
    action: str | None = None
    page_id: str | None = None


class BatchScheduleIn(CamelModel):
    title: str
    content: str | None = None
    post_type: str = "image"
    media_urls: list[str]
    page_id: str
    page_name: str | None = None
    start_at: datetime
    interval_minutes: int = Field(gt=0)
    first_comment: str | None = None
    post_first_comment: bool = False

    @model_validator(mode="after")
    def _check(self):
        if self.post_type not in ("image", "video", "reel"):
            raise ValueError("Batch scheduling supports image, video and reel posts")
        if not [u for u in self.media_urls if u and u.strip()]:
            raise ValueError("At least one media URL is required")
        return self


# --- Facebook ---

class FacebookPostIn(CamelModel):
    page_id: str | None = None
    post_type: str | None = None
    content: str | None = None
    media_url: str | None = None
    carousel_images: list[str] | None = None


class FacebookReelIn(CamelModel):
    page_id: str | None = None
    content: str | None = None
    media_url: str | None = None


class FacebookCommentIn(CamelModel):
    post_id: str | None = None
    message: str | None = None
    access_token: str | None = None
    page_id: str | None = None


class FacebookPageIn(CamelModel):
    id: str | None = None
    name: str | None = None
    access_token: str | None = None
    picture: str | None = None
    followers_count: int | None = None


class FacebookPagesSyncIn(CamelModel):
    pages: Any = None


class FacebookPageDeleteIn(CamelModel):
    page_id: str | None = None


class FacebookPageOut(CamelModel):
    id: str
    name: str
    picture: str | None = None
    followers_count: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


# --- User settings ---

class UserSettingsIn(CamelModel):
    gemini_api_key: str | None = None
    cloudinary_cloud_name: str | None = None
    cloudinary_api_key: str | None = None
    cloudinary_api_secret: str | None = None


class ApiKeyIn(CamelModel):
    gemini_api_key: str | None = None
    api_key: str | None = None


class CloudinaryCredentialsIn(CamelModel):
    cloud_name: str | None = None
    api_key: str | None = None
    api_secret: str | None = None


class CloudinaryDeleteIn(CloudinaryCredentialsIn):
    public_id: str | None = None
    resource_type: str | None = None


# --- Generation ---

class GenerateCaptionIn(CamelModel):
    api_key: str | None = None
    platform: str = "facebook"
    topic: str | None = None
    post_type: str = "page post"
    caption_count: int = Field(default=3, ge=1, le=10)
    generate_comments: bool = False
    include_link: bool = False
    link_url: str | None = None
    specific_caption: str | None = None


class GeneratePromptIn(CamelModel):
    api_key: str | None = None
    prompt_type: str = "image"
    style: str | None = None
    environment: str | None = None
    theme: str | None = None
    mood: str | None = None
    prompt_count: int = Field(default=5, ge=1, le=20)
    additional_details: str | None = None


class GenerateTextPostsIn(CamelModel):
    api_key: str | None = None
    topic: str | None = None
    platform: str | None = None
    reference_link: str | None = None
    count: int = Field(default=5, ge=1, le=10)


class AutoCaptionIn(CamelModel):
    api_key: str | None = None
    media_url: str | None = None
    media_type: str | None = None
    is_comment: bool = False
