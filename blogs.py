import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from auth import Identity
from database import oid
from errors import BlogifyError, Forbidden, InvalidRequest, MediaError, NotFound
from schemas import Author, Blog

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("title", "shortDescription", "category", "tags", "content")

# (bytes, filename) of an uploaded image
ImageUpload = Tuple[bytes, str]


def count_words(content: Optional[str]) -> int:
    return len((content or "").split())


def author_from(identity: Identity) -> Author:
    return Author(name=identity.name, email=identity.email, photo=identity.picture)


class BlogService:
    def __init__(self, store, media=None):
        self.store = store
        self.media = media

    def get(self, blog_id: str) -> Dict[str, Any]:
        doc = self.store.get_blog(oid(blog_id))
        if not doc:
            raise NotFound("Blog not found")
        return doc

    def recent(self, limit: int) -> List[Dict[str, Any]]:
        return self.store.recent_blogs(limit)

    def featured(self, limit: int) -> List[Dict[str, Any]]:
        return self.store.featured_blogs(limit)

    def create(self, fields: Dict[str, Any], identity: Identity, image: Optional[ImageUpload] = None) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        data = self._editable(fields)
        data.update({
            "wordCount": count_words(data.get("content")),
            "author": author_from(identity),
            "likes": [],
            "image": None,
            "createdAt": now,
            "updatedAt": now,
        })
        blog = self._validate(data)

        doc = blog.model_dump()
        if image is not None:
            doc["image"] = self._upload(image)
        try:
            doc["id"] = self.store.insert_blog(doc)
        except BlogifyError:
            if doc["image"]:
                self._discard(doc["image"])
            raise
        logger.info("Blog %s created by %s", doc["id"], identity.email)
        return doc

    def update(self, blog_id: str, fields: Dict[str, Any], identity: Identity, image: Optional[ImageUpload] = None) -> Dict[str, Any]:
        existing = self.get(blog_id)
        owner = (existing.get("author") or {}).get("email")
        if not owner or owner.lower() != identity.email.lower():
            raise Forbidden("Only the author can edit this blog")

        changes = self._editable(fields)
        # Stored nulls fall back to schema defaults so untouched legacy fields validate
        stored = {k: v for k, v in existing.items() if v is not None}
        merged = {**stored, **changes}
        merged.setdefault("createdAt", merged.get("updatedAt") or datetime.now(timezone.utc))
        merged["wordCount"] = count_words(merged.get("content"))
        merged["author"] = author_from(identity)
        merged["updatedAt"] = datetime.now(timezone.utc)
        blog = self._validate(merged)

        update = {name: getattr(blog, name) for name in EDITABLE_FIELDS if name in changes}
        update.update({
            "wordCount": blog.wordCount,
            "author": blog.author.model_dump(),
            "updatedAt": blog.updatedAt,
        })
        old_image = existing.get("image")
        if image is not None:
            update["image"] = self._upload(image)

        try:
            if not self.store.update_blog(oid(blog_id), update):
                raise NotFound("Blog not found")
        except BlogifyError:
            if image is not None:
                self._discard(update["image"])
            raise
        if image is not None and old_image:
            self._discard(old_image)
        return {**existing, **update}

    def _editable(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in fields.items() if k in EDITABLE_FIELDS and v is not None}

    def _validate(self, data: Dict[str, Any]) -> Blog:
        try:
            return Blog(**data)
        except ValidationError as exc:
            fields = ", ".join(str(err["loc"][0]) for err in exc.errors() if err.get("loc"))
            raise InvalidRequest(f"Invalid blog fields: {fields}") from exc

    def _upload(self, image: ImageUpload) -> str:
        if self.media is None:
            raise MediaError("Media host is not configured")
        data, filename = image
        return self.media.upload(data, filename)

    def _discard(self, url: str) -> None:
        # Cleanup is best effort
        try:
            if not self.media.delete_url(url):
                logger.warning("Image %s was not deleted", url)
        except MediaError as exc:
            logger.warning("Failed to delete image %s: %s", url, exc)
