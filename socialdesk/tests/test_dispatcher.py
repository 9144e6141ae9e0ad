from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

from socialdesk.models import ScheduledPost
from socialdesk.services.dispatcher import dispatch_due_posts, claim_post, preview_due_posts, PAGE_MISSING_ERROR
from socialdesk.services.publisher import PublishError
from socialdesk.tests.test_publisher import fake_response


def reload(db, post_id):
    db.expire_all()
    return db.get(ScheduledPost, post_id)


def test_due_post_is_published(db, session_factory, make_page, make_post):
    make_page()
    post = make_post()
    publisher = MagicMock(return_value={"post_id": "123_1"})

    summary = dispatch_due_posts(session_factory, publisher=publisher)

    assert summary["due"] == 1
    assert summary["message"] == "Processed 1 scheduled posts"
    assert summary["results"] == [{"post_id": post.id, "status": "success", "facebook_post_id": "123_1"}]
    publisher.assert_called_once_with(
        page_id="123", access_token="page-token", post_type="image", content="Hello",
        media_url="https://cdn.example.com/a.jpg",
    )
    row = reload(db, post.id)
    assert row.status == "posted"
    assert row.facebook_post_id == "123_1"
    assert row.posted_at is not None
    assert row.error_message is None


def test_future_and_finished_posts_are_ignored(session_factory, make_page, make_post):
    make_page()
    make_post(scheduled_for=datetime.now(timezone.utc) + timedelta(hours=1))
    make_post(status="posted")
    make_post(status="cancelled")
    publisher = MagicMock()

    summary = dispatch_due_posts(session_factory, publisher=publisher)

    assert summary["due"] == 0
    assert summary["results"] == []
    publisher.assert_not_called()


def test_second_pass_does_not_republish(db, session_factory, make_page, make_post):
    make_page()
    make_post()
    publisher = MagicMock(return_value={"post_id": "123_1"})

    dispatch_due_posts(session_factory, publisher=publisher)
    summary = dispatch_due_posts(session_factory, publisher=publisher)

    assert summary["due"] == 0
    assert publisher.call_count == 1


def test_failure_is_recorded_and_batch_continues(db, session_factory, make_page, make_post):
    make_page()
    first = make_post(title="first", scheduled_for=datetime.now(timezone.utc) - timedelta(minutes=5))
    second = make_post(title="second")
    publisher = MagicMock(side_effect=[PublishError("Invalid OAuth access token."), {"post_id": "123_2"}])

    summary = dispatch_due_posts(session_factory, publisher=publisher)

    statuses = {r["post_id"]: r["status"] for r in summary["results"]}
    assert statuses == {first.id: "failed", second.id: "success"}
    assert reload(db, first.id).status == "failed"
    assert reload(db, first.id).error_message == "Invalid OAuth access token."
    assert reload(db, second.id).status == "posted"


def test_missing_page_fails_post(db, session_factory, make_post):
    post = make_post(page_id="999")
    publisher = MagicMock()

    summary = dispatch_due_posts(session_factory, publisher=publisher)

    assert summary["results"][0]["error"] == PAGE_MISSING_ERROR
    publisher.assert_not_called()
    assert reload(db, post.id).status == "failed"


def test_comment_failure_does_not_fail_post(db, session_factory, make_page, make_post):
    make_page()
    post = make_post(first_comment="Link in bio", post_first_comment=True)
    publisher = MagicMock(return_value={"post_id": "123_1"})
    comment_poster = MagicMock(side_effect=PublishError("Failed to post comment to Facebook"))

    summary = dispatch_due_posts(session_factory, publisher=publisher, comment_poster=comment_poster)

    comment_poster.assert_called_once_with(post_id="123_1", message="Link in bio", access_token="page-token")
    assert summary["results"][0]["status"] == "success"
    assert reload(db, post.id).status == "posted"


def test_comment_skipped_when_flag_is_off(session_factory, make_page, make_post):
    make_page()
    make_post(first_comment="Link in bio", post_first_comment=False)
    comment_poster = MagicMock()

    dispatch_due_posts(session_factory, publisher=MagicMock(return_value={"post_id": "x"}),
                       comment_poster=comment_poster)

    comment_poster.assert_not_called()


def test_carousel_payload(session_factory, make_page, make_post):
    make_page()
    make_post(post_type="carousel", media_urls=[], carousel_images=["https://x/1.jpg", "https://x/2.jpg"])
    publisher = MagicMock(return_value={"post_id": "c"})

    dispatch_due_posts(session_factory, publisher=publisher)

    kwargs = publisher.call_args.kwargs
    assert kwargs["carousel_images"] == ["https://x/1.jpg", "https://x/2.jpg"]
    assert "media_url" not in kwargs


def test_claim_is_exclusive(db, make_post):
    post = make_post()
    assert claim_post(db, post.id) is True
    assert claim_post(db, post.id) is False


def test_reel_upload_failure_marks_post_failed(db, session_factory, make_page, make_post):
    make_page()
    post = make_post(post_type="reel", media_urls=["https://x/v.mp4"])
    posts = [
        fake_response(body={"video_id": "v9", "upload_url": "https://rupload.example/v9"}),
        fake_response(500, body={"error": "upload rejected"}),
    ]
    with patch("socialdesk.services.publisher.check_connectivity", return_value=True), \
            patch("socialdesk.services.publisher.requests.post", side_effect=posts) as graph_post, \
            patch("socialdesk.services.publisher.requests.get", return_value=fake_response(content=b"video")):
        summary = dispatch_due_posts(session_factory)

    assert graph_post.call_count == 2
    assert summary["results"][0]["status"] == "failed"
    row = reload(db, post.id)
    assert row.status == "failed"
    assert row.error_message.startswith("Failed to upload video")


def test_image_post_end_to_end(db, session_factory, make_page, make_post):
    make_page(page_id="123", token="tok")
    post = make_post(post_type="image", media_urls=["https://cdn.example.com/x.jpg"], content="Caption")
    with patch("socialdesk.services.publisher.check_connectivity", return_value=True), \
            patch("socialdesk.services.publisher.requests.post",
                  return_value=fake_response(body={"id": "photo_1", "post_id": "123_555"})) as graph_post:
        dispatch_due_posts(session_factory)

    url = graph_post.call_args.args[0]
    assert url.endswith("/123/photos")
    assert graph_post.call_args.kwargs["json"] == {
        "url": "https://cdn.example.com/x.jpg", "caption": "Caption", "access_token": "tok",
    }
    row = reload(db, post.id)
    assert row.status == "posted"
    assert row.facebook_post_id == "photo_1"


def test_preview_is_read_only(db, make_post):
    post = make_post()
    due = preview_due_posts(db)
    assert [d["id"] for d in due] == [post.id]
    assert reload(db, post.id).status == "scheduled"


def test_post_deleted_during_pass_is_skipped(db, session_factory, make_page, make_post):
    make_page()
    now = datetime.now(timezone.utc)
    first = make_post(title="first", scheduled_for=now - timedelta(minutes=3))
    doomed = make_post(title="doomed", scheduled_for=now - timedelta(minutes=2))
    last = make_post(title="last", scheduled_for=now - timedelta(minutes=1))
    doomed_id = doomed.id

    def publish_and_delete_next(**kwargs):
        other = session_factory()
        try:
            other.query(ScheduledPost).filter(ScheduledPost.id == doomed_id).delete()
            other.commit()
        finally:
            other.close()
        return {"post_id": "123_1"}

    publisher = MagicMock(side_effect=publish_and_delete_next)
    summary = dispatch_due_posts(session_factory, publisher=publisher)

    statuses = [(r["post_id"], r["status"]) for r in summary["results"]]
    assert statuses == [(first.id, "success"), (doomed_id, "skipped"), (last.id, "success")]
    assert publisher.call_count == 2
    assert reload(db, last.id).status == "posted"
