from unittest.mock import MagicMock

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError, OperationFailure, ServerSelectionTimeoutError

from database import BLOGS, COMMENTS, WISHLISTS, BlogStore, oid
from errors import InvalidRequest, StoreError


@pytest.fixture
def collections():
    return {BLOGS: MagicMock(), WISHLISTS: MagicMock(), COMMENTS: MagicMock()}


@pytest.fixture
def store(collections):
    store = BlogStore("mongodb://localhost:27017", "blogify")
    store.db = MagicMock()
    store.db.__getitem__.side_effect = collections.__getitem__
    return store


def test_oid_accepts_valid_ids():
    value = ObjectId()
    assert oid(str(value)) == value
    assert oid(value) is value


@pytest.mark.parametrize("bad", ["", "123", None, 42, "zzzzzzzzzzzzzzzzzzzzzzzz"])
def test_oid_rejects_invalid_ids(bad):
    with pytest.raises(InvalidRequest):
        oid(bad)


def test_text_search_ranks_by_score(store, collections):
    blog_id = ObjectId()
    cursor = collections[BLOGS].find.return_value.sort.return_value
    cursor.__iter__.return_value = iter([{"_id": blog_id, "title": "AI", "score": 1.5}])

    results = store.text_search("machine learning")

    args, _ = collections[BLOGS].find.call_args
    assert args[0] == {"$text": {"$search": "machine learning"}}
    assert args[1] == {"score": {"$meta": "textScore"}}
    collections[BLOGS].find.return_value.sort.assert_called_once_with([("score", {"$meta": "textScore"})])
    assert results == [{"title": "AI", "id": str(blog_id)}]


def test_pattern_search_ors_fields_case_insensitively(store, collections):
    collections[BLOGS].find.return_value = iter([])

    store.pattern_search("ai", ("title", "tags"))

    args, _ = collections[BLOGS].find.call_args
    assert args[0] == {
        "$or": [
            {"title": {"$regex": "ai", "$options": "i"}},
            {"tags": {"$regex": "ai", "$options": "i"}},
        ]
    }


def test_add_wishlist_entry_upserts_on_the_pair(store, collections):
    collections[WISHLISTS].update_one.return_value.upserted_id = ObjectId()

    assert store.add_wishlist_entry("u1", "b1") is True

    args, kwargs = collections[WISHLISTS].update_one.call_args
    assert args[0] == {"userId": "u1", "itemId": "b1"}
    assert set(args[1]["$setOnInsert"]) == {"userId", "itemId", "createdAt"}
    assert kwargs["upsert"] is True


def test_add_wishlist_entry_reports_existing(store, collections):
    collections[WISHLISTS].update_one.return_value.upserted_id = None

    assert store.add_wishlist_entry("u1", "b1") is False


def test_add_wishlist_entry_treats_duplicate_key_as_existing(store, collections):
    collections[WISHLISTS].update_one.side_effect = DuplicateKeyError("dup")

    assert store.add_wishlist_entry("u1", "b1") is False


def test_remove_wishlist_entry_is_atomic(store, collections):
    collections[WISHLISTS].find_one_and_delete.return_value = {"_id": ObjectId()}

    assert store.remove_wishlist_entry("u1", "b1") is True
    args, _ = collections[WISHLISTS].find_one_and_delete.call_args
    assert args[0] == {"userId": "u1", "itemId": "b1"}

    collections[WISHLISTS].find_one_and_delete.return_value = None
    assert store.remove_wishlist_entry("u1", "b1") is False


def test_likes_use_set_operators(store, collections):
    blog_id = ObjectId()
    collections[BLOGS].update_one.return_value.matched_count = 1

    assert store.add_like(blog_id, "u1") is True
    assert collections[BLOGS].update_one.call_args.args[1] == {"$addToSet": {"likes": "u1"}}

    assert store.remove_like(blog_id, "u1") is True
    assert collections[BLOGS].update_one.call_args.args[1] == {"$pull": {"likes": "u1"}}


def test_add_like_reports_missing_blog(store, collections):
    collections[BLOGS].update_one.return_value.matched_count = 0

    assert store.add_like(ObjectId(), "u1") is False


def test_comments_sorted_newest_first(store, collections):
    cursor = collections[COMMENTS].find.return_value.sort.return_value
    cursor.__iter__.return_value = iter([])

    assert store.comments_for("b1") == []
    assert collections[COMMENTS].find.call_args.args[0] == {"itemId": "b1"}
    collections[COMMENTS].find.return_value.sort.assert_called_once_with([("postedAt", -1)])


def test_pymongo_errors_become_store_errors(store, collections):
    collections[BLOGS].find.side_effect = ServerSelectionTimeoutError("down")

    with pytest.raises(StoreError) as exc_info:
        store.all_blogs()
    assert exc_info.value.detail == "Database error"


def test_connect_pings_and_builds_indexes(collections):
    client = MagicMock()
    db = client.__getitem__.return_value
    db.__getitem__.side_effect = collections.__getitem__

    store = BlogStore("mongodb://localhost:27017", "blogify", client=client).connect()

    client.__getitem__.assert_called_once_with("blogify")
    db.command.assert_called_once_with("ping")
    unique = [c for c in collections[WISHLISTS].create_index.call_args_list if c.kwargs.get("unique")]
    assert unique and unique[0].args[0] == [("userId", 1), ("itemId", 1)]

    store.close()
    client.close.assert_called_once_with()
    assert store.db is None


def test_unit_of_work_without_transactions_runs_plain(store):
    with store.unit_of_work():
        assert store.in_transaction is False


def test_unit_of_work_binds_session(collections):
    client = MagicMock()
    session = client.start_session.return_value.__enter__.return_value
    store = BlogStore("mongodb://localhost:27017", "blogify", transactions=True, client=client)
    store.db = MagicMock()
    store.db.__getitem__.side_effect = collections.__getitem__
    collections[WISHLISTS].find_one_and_delete.return_value = None

    with store.unit_of_work():
        assert store.in_transaction is True
        store.remove_wishlist_entry("u1", "b1")

    session.start_transaction.assert_called_once_with()
    assert collections[WISHLISTS].find_one_and_delete.call_args.kwargs["session"] is session
    assert store.in_transaction is False


def test_existing_text_index_does_not_block_startup(store, collections, caplog):
    def create_index(keys, **kwargs):
        if kwargs.get("name") == "blog_text":
            raise OperationFailure("only one text index per collection", code=85)

    collections[BLOGS].create_index.side_effect = create_index

    store.ensure_indexes()

    assert collections[WISHLISTS].create_index.called
    assert "Keeping existing text index" in caplog.text


def test_other_index_failures_still_raise(store, collections):
    collections[BLOGS].create_index.side_effect = OperationFailure("not authorized", code=13)

    with pytest.raises(StoreError):
        store.ensure_indexes()
