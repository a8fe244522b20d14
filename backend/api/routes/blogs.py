"""
Blog API routes.

Published posts are public. Editors and admins manage posts under
``/admin/blogs``; an API token with ``blog:write`` may create posts on behalf
of its (editor or admin) owner.
"""

import json
import logging
import math
import re
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import String, cast, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import Principal, require_scope
from api.deps_admin import get_current_editor_user
from api.schemas.blog import (
    BlogCreateRequest,
    BlogDetail,
    BlogListResponse,
    BlogUpdateRequest,
)
from core.scopes import BLOG_WRITE
from infrastructure.database.connection import get_db
from infrastructure.database.models import Blog, User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/blogs", tags=["Blogs"])
admin_router = APIRouter(prefix="/admin/blogs", tags=["Admin - Blogs"])


def slugify(text: str) -> str:
    """Convert text to URL-safe slug."""
    text = text.lower().strip()
    text = re.sub(r"[^\w\s-]", "", text)
    text = re.sub(r"[\s_-]+", "-", text)
    text = re.sub(r"^-+|-+$", "", text)
    return text[:200]


def calculate_read_time(content: str) -> int:
    """Estimated read time in minutes (200 wpm)."""
    word_count = len(content.split())
    return max(1, round(word_count / 200))


async def _paginate(db: AsyncSession, query, page: int, page_size: int) -> BlogListResponse:
    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0

    query = query.order_by(Blog.created_at.desc())
    query = query.offset((page - 1) * page_size).limit(page_size)
    result = await db.execute(query)

    return BlogListResponse(
        items=result.scalars().all(),
        total=total,
        page=page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size) if total > 0 else 0,
    )


async def _slug_taken(db: AsyncSession, slug: str, exclude_id: Optional[str] = None) -> bool:
    query = select(Blog.id).where(Blog.slug == slug)
    if exclude_id:
        query = query.where(Blog.id != exclude_id)
    return (await db.execute(query)).scalar_one_or_none() is not None


async def _get_blog(db: AsyncSession, blog_id: str) -> Blog:
    blog = await db.get(Blog, blog_id)
    if not blog:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Blog post not found",
        )
    return blog


# Public


@router.get("", response_model=BlogListResponse)
async def list_published_blogs(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=50),
    tag: Optional[str] = None,
    featured: Optional[bool] = None,
    db: AsyncSession = Depends(get_db),
):
    """List published posts, newest first."""
    query = select(Blog).where(Blog.published.is_(True))
    if tag:
        # Tags are a JSON array; match the encoded element
        query = query.where(cast(Blog.tags, String).like(f"%{json.dumps(tag)}%"))
    if featured is not None:
        query = query.where(Blog.featured.is_(featured))
    return await _paginate(db, query, page, page_size)


@router.get("/{slug}", response_model=BlogDetail)
async def get_published_blog(slug: str, db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(Blog).where(Blog.slug == slug, Blog.published.is_(True))
    )
    blog = result.scalar_one_or_none()
    if not blog:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Blog post not found",
        )
    return blog


# Admin


@admin_router.get("", response_model=BlogListResponse)
async def list_all_blogs(
    editor: Annotated[User, Depends(get_current_editor_user)],
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    published: Optional[bool] = None,
    db: AsyncSession = Depends(get_db),
):
    """All posts including drafts."""
    query = select(Blog)
    if published is not None:
        query = query.where(Blog.published.is_(published))
    return await _paginate(db, query, page, page_size)


@admin_router.post("", response_model=BlogDetail, status_code=status.HTTP_201_CREATED)
async def create_blog(
    body: BlogCreateRequest,
    principal: Annotated[Principal, Depends(require_scope(BLOG_WRITE))],
    db: AsyncSession = Depends(get_db),
):
    """
    Create a post. The slug is derived from the title when omitted.

    Raises:
        HTTPException: 403 unless the author is an editor or admin,
            409 when the slug is already in use
    """
    author = principal.user
    if not author.is_editor:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Editor access required",
        )

    slug = body.slug or slugify(body.title)
    if not slug:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Could not derive a slug from the title; provide one",
        )
    if await _slug_taken(db, slug):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"A blog post with slug '{slug}' already exists",
        )

    data = body.model_dump(exclude={"slug"})
    if data["reading_time_minutes"] is None:
        data["reading_time_minutes"] = calculate_read_time(body.content)

    blog = Blog(slug=slug, author_id=author.id, **data)
    db.add(blog)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"A blog post with slug '{slug}' already exists",
        )
    await db.refresh(blog)

    logger.info(
        "Blog post %s created",
        slug,
        extra={
            "user_id": author.id,
            "api_token_id": principal.api_token.api_token_id if principal.api_token else None,
        },
    )
    return blog


@admin_router.patch("/{blog_id}", response_model=BlogDetail)
async def update_blog(
    blog_id: str,
    body: BlogUpdateRequest,
    editor: Annotated[User, Depends(get_current_editor_user)],
    db: AsyncSession = Depends(get_db),
):
    """Partial update; only fields present in the body change."""
    blog = await _get_blog(db, blog_id)
    updates = body.model_dump(exclude_unset=True)

    new_slug = updates.get("slug")
    if new_slug and new_slug != blog.slug and await _slug_taken(db, new_slug, exclude_id=blog.id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"A blog post with slug '{new_slug}' already exists",
        )

    for field, value in updates.items():
        if value is None and field in ("title", "slug", "content", "published", "featured", "tags"):
            continue
        setattr(blog, field, value)
    if "content" in updates and "reading_time_minutes" not in updates and updates["content"]:
        blog.reading_time_minutes = calculate_read_time(updates["content"])

    await db.commit()
    await db.refresh(blog)

    logger.info("Blog post %s updated", blog.slug, extra={"user_id": editor.id})
    return blog


@admin_router.delete("/{blog_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_blog(
    blog_id: str,
    editor: Annotated[User, Depends(get_current_editor_user)],
    db: AsyncSession = Depends(get_db),
):
    blog = await _get_blog(db, blog_id)
    await db.delete(blog)
    await db.commit()

    logger.info("Blog post %s deleted", blog.slug, extra={"user_id": editor.id})
