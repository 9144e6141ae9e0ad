# Copyright (c) 2026 Mohammed Hassan. All rights reserved.
# Proprietary and confidential. Unauthorized copying, modification, distribution, or use is prohibited.

import uuid

from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, Boolean
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

POST_TYPES = ("text", "image", "video", "reel", "carousel")
POST_STATUSES = ("scheduled", "processing", "posted", "failed", "cancelled")


def _new_id() -> str:
    return uuid.uuid4().hex


class ScheduledPost(Base):
    __tablename__ = "scheduled_posts"

    id = Column(String(32), primary_key=True, default=_new_id)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=True)
    post_type = Column(String, nullable=False, default="text")  # text, image, video, reel, carousel

    media_urls = Column(JSON, nullable=False, default=list)
    carousel_images = Column(JSON, nullable=False, default=list)

    page_id = Column(String, nullable=False, index=True)
    page_name = Column(String, nullable=True)

    scheduled_for = Column(DateTime(timezone=True), nullable=False, index=True)
    interval_minutes = Column(Integer, nullable=True)
    is_recurring = Column(Boolean, default=False, nullable=False)

    first_comment = Column(Text, nullable=True)
    post_first_comment = Column(Boolean, default=False, nullable=False)

    # scheduled -> processing -> posted | failed, or scheduled -> cancelled
    status = Column(String, nullable=False, default="scheduled", index=True)
    facebook_post_id = Column(String, nullable=True)
    posted_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class FacebookPage(Base):
    __tablename__ = "facebook_pages"

    # Same id Facebook uses for the page
    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    access_token = Column(Text, nullable=False)
    picture = Column(Text, nullable=True)
    followers_count = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class UserSettings(Base):
    __tablename__ = "user_settings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, unique=True, index=True, nullable=False)

    gemini_api_key = Column(Text, nullable=True)
    cloudinary_cloud_name = Column(String, nullable=True)
    cloudinary_api_key = Column(String, nullable=True)
    cloudinary_api_secret = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
