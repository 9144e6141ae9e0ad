import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ.pop("CRON_SECRET", None)

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from socialdesk.db import get_db
from socialdesk.models import Base, ScheduledPost, FacebookPage
from socialdesk.services.scheduler import PostScheduler


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    from socialdesk.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    previous = app.state.scheduler
    app.state.scheduler = PostScheduler(session_factory)
    try:
        yield TestClient(app)
    finally:
        app.state.scheduler.stop()
        app.state.scheduler = previous
        app.dependency_overrides.clear()


@pytest.fixture
def make_page(db):
    def _make(page_id="123", token="page-token", name="Test Page"):
        page = FacebookPage(id=page_id, name=name, access_token=token)
        db.add(page)
        db.commit()
        return page
    return _make


@pytest.fixture
def make_post(db):
    def _make(**overrides):
        fields = {
            "title": "Post",
            "content": "Hello",
            "post_type": "image",
            "media_urls": ["https://cdn.example.com/a.jpg"],
            "carousel_images": [],
            "page_id": "123",
            "scheduled_for": datetime.now(timezone.utc) - timedelta(minutes=1),
            "status": "scheduled",
        }
        fields.update(overrides)
        post = ScheduledPost(**fields)
        db.add(post)
        db.commit()
        db.refresh(post)
        return post
    return _make
