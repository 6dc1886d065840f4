"""Request bodies for the HTTP API."""
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    """Body of /api/v1/chat/ask and /api/v1/chat/detailed."""

    model_config = ConfigDict(populate_by_name=True)

    query: str
    max_results: Optional[int] = Field(default=None, alias="maxResults", ge=1)


class BlogCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    slug: Optional[str] = Field(default=None, max_length=255)
    author: Optional[str] = None
    category: Optional[str] = None
    thumbnail: Optional[str] = None
    content: str = Field(default="", max_length=50000)
    status: str = "draft"


class BlogUpdate(BaseModel):
    """Partial update; unset fields keep their stored value."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    slug: Optional[str] = Field(default=None, max_length=255)
    author: Optional[str] = None
    category: Optional[str] = None
    thumbnail: Optional[str] = None
    content: Optional[str] = Field(default=None, max_length=50000)
    status: Optional[str] = None
