"""
Blog schemas.
"""

import re
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

_SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


def _validate_slug(v: str | None) -> str | None:
    if v is not None and not _SLUG_RE.match(v):
        raise ValueError("Slug must be lowercase letters, digits and single hyphens")
    return v


class BlogAuthor(BaseModel):
    id: str
    name: str | None = None
    image: str | None = None

    model_config = ConfigDict(from_attributes=True)


class BlogListItem(BaseModel):
    """Blog card data for list views."""

    id: str
    slug: str
    title: str
    excerpt: str | None = None
    cover_image: str | None = None
    published: bool
    featured: bool
    tags: list[str] = Field(default_factory=list)
    reading_time_minutes: int | None = None
    created_at: datetime
    updated_at: datetime
    author: BlogAuthor | None = None

    model_config = ConfigDict(from_attributes=True)


class BlogDetail(BlogListItem):
    content: str


class BlogListResponse(BaseModel):
    """Paginated blog list response."""

    items: list[BlogListItem]
    total: int
    page: int
    page_size: int
    total_pages: int


class BlogCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    slug: str | None = Field(None, max_length=255)
    excerpt: str | None = None
    content: str = Field(..., min_length=1)
    cover_image: str | None = Field(None, max_length=1000)
    published: bool = False
    featured: bool = False
    tags: list[str] = Field(default_factory=list)
    reading_time_minutes: int | None = Field(None, ge=0)

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: str | None) -> str | None:
        return _validate_slug(v)


class BlogUpdateRequest(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    title: str | None = Field(None, min_length=1, max_length=500)
    slug: str | None = Field(None, max_length=255)
    excerpt: str | None = None
    content: str | None = Field(None, min_length=1)
    cover_image: str | None = Field(None, max_length=1000)
    published: bool | None = None
    featured: bool | None = None
    tags: list[str] | None = None
    reading_time_minutes: int | None = Field(None, ge=0)

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: str | None) -> str | None:
        return _validate_slug(v)
