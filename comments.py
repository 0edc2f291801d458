from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from database import oid
from errors import InvalidRequest
from schemas import Comment


def post_comment(store, item_id: str, text: str, user_name: str, user_image: Optional[str] = None) -> Dict[str, Any]:
    item_id = (item_id or "").strip()
    text = (text or "").strip()
    user_name = (user_name or "").strip()
    if not item_id or not text or not user_name:
        raise InvalidRequest("itemId, text and userName are required")
    oid(item_id)

    comment = Comment(
        itemId=item_id,
        text=text,
        userName=user_name,
        userImage=user_image or None,
        postedAt=datetime.now(timezone.utc),
    )
    data = comment.model_dump()
    data["id"] = store.insert_comment(data)
    return data


def list_comments(store, item_id: str) -> List[Dict[str, Any]]:
    """Comments on a blog, newest first"""
    item_id = (item_id or "").strip()
    oid(item_id)
    return store.comments_for(item_id)
