"""
Database Schemas for Blogify

Each Pydantic model represents a collection in MongoDB.
Collection names are listed on each model. Stored documents use the
camelCase field names shown here.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

# Embedded documents

class Author(BaseModel):
    """Snapshot of the writer, taken from the verified identity"""
    name: Optional[str] = Field(None, description="Display name")
    email: str = Field(..., description="Verified email")
    photo: Optional[str] = Field(None, description="Avatar URL")

# Core domain models

class Blog(BaseModel):
    """
    Blog posts
    Collection name: "blogs"
    """
    title: str = Field(..., min_length=1, description="Post title (text indexed)")
    shortDescription: str = Field("", description="Teaser shown in listings (text indexed)")
    category: Optional[str] = Field(None, description="Optional category")
    tags: List[str] = Field(default_factory=list, description="Tags (text indexed)")
    content: str = Field("", description="Body of the post")
    wordCount: int = Field(0, ge=0, description="Computed: whitespace-separated tokens in content")
    image: Optional[str] = Field(None, description="Hosted image URL")
    author: Author
    likes: List[str] = Field(default_factory=list, description="Ids of users with a wishlist entry")
    createdAt: datetime
    updatedAt: datetime

    @field_validator("tags")
    @classmethod
    def unique_tags(cls, v: List[str]) -> List[str]:
        seen = []
        for tag in (t.strip() for t in v):
            if tag and tag not in seen:
                seen.append(tag)
        return seen

class Wishlist(BaseModel):
    """
    Wishlist entries, unique per (userId, itemId)
    Collection name: "wishlists"
    """
    userId: str = Field(..., min_length=1, description="Wishing user")
    itemId: str = Field(..., min_length=1, description="Target blog id (as string)")
    createdAt: datetime

class Comment(BaseModel):
    """
    Comments on blogs, append only
    Collection name: "comments"
    """
    itemId: str = Field(..., description="Target blog id (as string)")
    text: str = Field(..., min_length=1)
    userName: str = Field(..., min_length=1)
    userImage: Optional[str] = Field(None, description="Commenter avatar URL")
    postedAt: datetime = Field(..., description="Server-side timestamp")
