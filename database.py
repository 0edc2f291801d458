"""
MongoDB access for Blogify

BlogStore is constructed explicitly, connected at startup and closed at
shutdown. Every pymongo failure leaves this module as a StoreError.
"""
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, TEXT, MongoClient
from pymongo.client_session import ClientSession
from pymongo.errors import DuplicateKeyError, OperationFailure, PyMongoError

from errors import InvalidRequest, StoreError
from schemas import Wishlist

logger = logging.getLogger(__name__)

BLOGS = "blogs"
WISHLISTS = "wishlists"
COMMENTS = "comments"

TEXT_FIELDS = ("title", "shortDescription", "tags")

# CannotCreateIndex, IndexOptionsConflict, IndexKeySpecsConflict
INDEX_CONFLICT_CODES = {67, 85, 86}

# Session of the transaction running in the current context, if any
_current_session: ContextVar[Optional[ClientSession]] = ContextVar(
    "current_session", default=None
)


def oid(id_str: Any) -> ObjectId:
    if isinstance(id_str, ObjectId):
        return id_str
    if not isinstance(id_str, str) or not ObjectId.is_valid(id_str):
        raise InvalidRequest("Invalid id")
    return ObjectId(id_str)


def public(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Swap Mongo's _id for a string id"""
    if doc is None:
        return None
    doc["id"] = str(doc.pop("_id"))
    return doc


def store_call(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except PyMongoError as exc:
            logger.error("Store call %s failed: %s", fn.__name__, exc)
            raise StoreError("Database error") from exc

    return wrapper


class BlogStore:
    def __init__(
        self,
        url: str,
        name: str,
        *,
        transactions: bool = False,
        client: Optional[MongoClient] = None,
    ):
        self._url = url
        self._name = name
        self._client = client
        self.transactions = transactions
        self.db = None

    @classmethod
    def from_settings(cls, settings) -> "BlogStore":
        return cls(
            settings.database_url,
            settings.database_name,
            transactions=settings.mongo_transactions,
        )

    # Lifecycle

    def connect(self) -> "BlogStore":
        if self._client is None:
            self._client = MongoClient(self._url)
        self.db = self._client[self._name]
        self.ping()
        self.ensure_indexes()
        logger.info("Connected to database %s", self._name)
        return self

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            logger.info("Closed database connection")
        self._client = None
        self.db = None

    @store_call
    def ping(self) -> bool:
        self.db.command("ping")
        return True

    @store_call
    def ensure_indexes(self) -> None:
        try:
            self.db[BLOGS].create_index(
                [(field, TEXT) for field in TEXT_FIELDS], name="blog_text"
            )
        except OperationFailure as exc:
            # Only one text index per collection; an existing one is kept as is
            if exc.code not in INDEX_CONFLICT_CODES:
                raise
            logger.warning("Keeping existing text index on %s: %s", BLOGS, exc)
        self.db[BLOGS].create_index([("createdAt", DESCENDING)])
        self.db[BLOGS].create_index([("wordCount", DESCENDING)])
        self.db[WISHLISTS].create_index(
            [("userId", ASCENDING), ("itemId", ASCENDING)],
            unique=True,
            name="user_item_unique",
        )
        self.db[COMMENTS].create_index([("itemId", ASCENDING), ("postedAt", DESCENDING)])

    # Transactions

    @property
    def in_transaction(self) -> bool:
        return _current_session.get() is not None

    @contextmanager
    def unit_of_work(self):
        """Run the block in one multi-document transaction when enabled.

        Without transactions (or when already inside one) the block runs as is
        and each call commits on its own.
        """
        if not self.transactions or self.in_transaction:
            yield
            return
        try:
            with self._client.start_session() as session:
                with session.start_transaction():
                    token = _current_session.set(session)
                    try:
                        yield
                    finally:
                        _current_session.reset(token)
        except PyMongoError as exc:
            logger.error("Transaction failed: %s", exc)
            raise StoreError("Database error") from exc

    @property
    def _session(self) -> Optional[ClientSession]:
        return _current_session.get()

    # Blogs

    @store_call
    def all_blogs(self) -> List[Dict[str, Any]]:
        return [public(doc) for doc in self.db[BLOGS].find({}, session=self._session)]

    @store_call
    def text_search(self, query: str) -> List[Dict[str, Any]]:
        score = {"score": {"$meta": "textScore"}}
        cursor = (
            self.db[BLOGS]
            .find({"$text": {"$search": query}}, score, session=self._session)
            .sort([("score", {"$meta": "textScore"})])
        )
        results = []
        for doc in cursor:
            doc.pop("score", None)
            results.append(public(doc))
        return results

    @store_call
    def pattern_search(self, pattern: str, fields: Iterable[str]) -> List[Dict[str, Any]]:
        q = {"$or": [{field: {"$regex": pattern, "$options": "i"}} for field in fields]}
        return [public(doc) for doc in self.db[BLOGS].find(q, session=self._session)]

    @store_call
    def recent_blogs(self, limit: int) -> List[Dict[str, Any]]:
        cursor = self.db[BLOGS].find({}, session=self._session).sort([("createdAt", -1)]).limit(limit)
        return [public(doc) for doc in cursor]

    @store_call
    def featured_blogs(self, limit: int) -> List[Dict[str, Any]]:
        cursor = self.db[BLOGS].find({}, session=self._session).sort([("wordCount", -1)]).limit(limit)
        return [public(doc) for doc in cursor]

    @store_call
    def get_blog(self, blog_id: ObjectId) -> Optional[Dict[str, Any]]:
        return public(self.db[BLOGS].find_one({"_id": blog_id}, session=self._session))

    @store_call
    def blogs_by_ids(self, blog_ids: List[ObjectId]) -> List[Dict[str, Any]]:
        if not blog_ids:
            return []
        cursor = self.db[BLOGS].find({"_id": {"$in": blog_ids}}, session=self._session)
        return [public(doc) for doc in cursor]

    @store_call
    def insert_blog(self, data: Dict[str, Any]) -> str:
        inserted_id = self.db[BLOGS].insert_one(dict(data), session=self._session).inserted_id
        return str(inserted_id)

    @store_call
    def update_blog(self, blog_id: ObjectId, fields: Dict[str, Any]) -> bool:
        res = self.db[BLOGS].update_one({"_id": blog_id}, {"$set": fields}, session=self._session)
        return res.matched_count > 0

    @store_call
    def blogs_missing_word_count(self) -> List[Dict[str, Any]]:
        cursor = self.db[BLOGS].find({"wordCount": {"$exists": False}}, {"content": 1})
        return [public(doc) for doc in cursor]

    @store_call
    def set_word_count(self, blog_id: ObjectId, word_count: int) -> bool:
        res = self.db[BLOGS].update_one({"_id": blog_id}, {"$set": {"wordCount": word_count}})
        return res.modified_count > 0

    # Likes

    @store_call
    def add_like(self, blog_id: ObjectId, user_id: str) -> bool:
        res = self.db[BLOGS].update_one(
            {"_id": blog_id}, {"$addToSet": {"likes": user_id}}, session=self._session
        )
        return res.matched_count > 0

    @store_call
    def remove_like(self, blog_id: ObjectId, user_id: str) -> bool:
        # $pull drops every copy, duplicates included
        res = self.db[BLOGS].update_one(
            {"_id": blog_id}, {"$pull": {"likes": user_id}}, session=self._session
        )
        return res.matched_count > 0

    @store_call
    def blog_likes(self) -> List[Dict[str, Any]]:
        return [public(doc) for doc in self.db[BLOGS].find({}, {"likes": 1})]

    @store_call
    def set_likes(self, blog_id: ObjectId, likes: List[str]) -> bool:
        res = self.db[BLOGS].update_one({"_id": blog_id}, {"$set": {"likes": likes}})
        return res.modified_count > 0

    # Wishlists

    @store_call
    def add_wishlist_entry(self, user_id: str, item_id: str) -> bool:
        """Insert the (user, item) entry unless present. True when this call inserted it."""
        entry = Wishlist(userId=user_id, itemId=item_id, createdAt=datetime.now(timezone.utc))
        try:
            res = self.db[WISHLISTS].update_one(
                {"userId": user_id, "itemId": item_id},
                {"$setOnInsert": entry.model_dump()},
                upsert=True,
                session=self._session,
            )
        except DuplicateKeyError:
            # A concurrent upsert for the same pair got there first
            return False
        return res.upserted_id is not None

    @store_call
    def remove_wishlist_entry(self, user_id: str, item_id: str) -> bool:
        """Atomically delete the (user, item) entry. True when one existed."""
        doc = self.db[WISHLISTS].find_one_and_delete(
            {"userId": user_id, "itemId": item_id}, session=self._session
        )
        return doc is not None

    @store_call
    def wishlist_item_ids(self, user_id: str) -> List[str]:
        cursor = self.db[WISHLISTS].find({"userId": user_id}, {"itemId": 1}, session=self._session)
        return [doc["itemId"] for doc in cursor]

    @store_call
    def wishlist_users_by_item(self) -> Dict[str, List[str]]:
        pipeline = [{"$group": {"_id": "$itemId", "users": {"$addToSet": "$userId"}}}]
        return {row["_id"]: row["users"] for row in self.db[WISHLISTS].aggregate(pipeline)}

    # Comments

    @store_call
    def insert_comment(self, data: Dict[str, Any]) -> str:
        inserted_id = self.db[COMMENTS].insert_one(dict(data), session=self._session).inserted_id
        return str(inserted_id)

    @store_call
    def comments_for(self, item_id: str) -> List[Dict[str, Any]]:
        cursor = self.db[COMMENTS].find({"itemId": item_id}, session=self._session).sort([("postedAt", -1)])
        return [public(doc) for doc in cursor]
