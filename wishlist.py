import logging
from typing import Any, Callable, Dict, List

from bson import ObjectId

from database import oid
from errors import InvalidRequest, NotFound, StoreError

logger = logging.getLogger(__name__)


class WishlistToggle:
    """Flip a user's wishlist entry for a blog and keep blog.likes in step.

    The entry is always written before likes. When the store runs without
    transactions a failed likes update undoes the entry change; anything left
    over is repaired by maintenance.reconcile_likes.
    """

    def __init__(self, store):
        self.store = store

    def toggle(self, user_id: str, item_id: str) -> Dict[str, bool]:
        user_id = (user_id or "").strip()
        item_id = (item_id or "").strip()
        if not user_id or not item_id:
            raise InvalidRequest("userId and itemId are required")
        blog_id = oid(item_id)

        with self.store.unit_of_work():
            if self.store.remove_wishlist_entry(user_id, item_id):
                self._update_likes(
                    lambda: self.store.remove_like(blog_id, user_id),
                    undo=lambda: self.store.add_wishlist_entry(user_id, item_id),
                    user_id=user_id,
                    item_id=item_id,
                )
                logger.info("User %s removed blog %s from wishlist", user_id, item_id)
                return {"removed": True}

            if not self.store.add_wishlist_entry(user_id, item_id):
                logger.debug("Wishlist entry %s/%s already inserted concurrently", user_id, item_id)
            matched = self._update_likes(
                lambda: self.store.add_like(blog_id, user_id),
                undo=lambda: self.store.remove_wishlist_entry(user_id, item_id),
                user_id=user_id,
                item_id=item_id,
            )
            if not matched:
                self.store.remove_wishlist_entry(user_id, item_id)
                raise NotFound("Blog not found")
            logger.info("User %s added blog %s to wishlist", user_id, item_id)
            return {"added": True}

    def _update_likes(self, step: Callable[[], bool], *, undo: Callable[[], Any], user_id: str, item_id: str) -> bool:
        try:
            return step()
        except StoreError:
            if self.store.in_transaction:
                raise
            logger.warning("Likes update failed for %s/%s, undoing wishlist change", user_id, item_id)
            try:
                undo()
            except StoreError:
                logger.error(
                    "Wishlist entry and likes out of sync for %s/%s, run reconcile-likes",
                    user_id,
                    item_id,
                )
            raise

    def list_wishlisted(self, user_id: str) -> List[Dict[str, Any]]:
        user_id = (user_id or "").strip()
        if not user_id:
            raise InvalidRequest("userId is required")
        item_ids = self.store.wishlist_item_ids(user_id)
        # Entries may point at ids that were never valid blogs; skip them
        blog_ids = [ObjectId(i) for i in item_ids if ObjectId.is_valid(i)]
        return self.store.blogs_by_ids(blog_ids)
