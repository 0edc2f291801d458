from datetime import datetime, timedelta, timezone

import pytest
from bson import ObjectId

from comments import list_comments, post_comment
from errors import InvalidRequest


@pytest.fixture
def blog_id():
    return str(ObjectId())


def test_post_comment_stamps_server_time(store, blog_id):
    before = datetime.now(timezone.utc)

    comment = post_comment(store, blog_id, "Nice read", "Ana", "https://img/ana.png")

    assert comment["id"]
    assert comment["itemId"] == blog_id
    assert comment["text"] == "Nice read"
    assert comment["userImage"] == "https://img/ana.png"
    assert before <= comment["postedAt"] <= datetime.now(timezone.utc)
    assert store.calls == ["insert_comment"]


def test_post_comment_without_image(store, blog_id):
    comment = post_comment(store, blog_id, "Nice", "Ana")

    assert comment["userImage"] is None


@pytest.mark.parametrize(
    "item_id,text,user_name",
    [("", "text", "Ana"), (None, "text", "Ana"), ("ID", "", "Ana"), ("ID", "text", "  "), ("ID", None, None)],
)
def test_post_comment_rejects_missing_fields(store, blog_id, item_id, text, user_name):
    if item_id == "ID":
        item_id = blog_id
    with pytest.raises(InvalidRequest):
        post_comment(store, item_id, text, user_name)
    assert store.calls == []


def test_post_comment_rejects_malformed_id(store):
    with pytest.raises(InvalidRequest):
        post_comment(store, "123", "text", "Ana")
    assert store.calls == []


def test_list_comments_newest_first(store, blog_id):
    now = datetime.now(timezone.utc)
    for minutes, text in [(10, "old"), (0, "new"), (5, "mid")]:
        store.comments.append(
            {"id": str(ObjectId()), "itemId": blog_id, "text": text, "userName": "Ana", "postedAt": now - timedelta(minutes=minutes)}
        )
    store.comments.append({"id": str(ObjectId()), "itemId": "other", "text": "x", "userName": "Bo", "postedAt": now})

    assert [c["text"] for c in list_comments(store, blog_id)] == ["new", "mid", "old"]


def test_list_comments_empty(store, blog_id):
    assert list_comments(store, blog_id) == []


def test_list_comments_rejects_malformed_id_before_store_access(store):
    with pytest.raises(InvalidRequest):
        list_comments(store, "nope")
    assert store.calls == []
