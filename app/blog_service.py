"""Blog CRUD with best-effort vector index sync.

The blog table is written first. The index write happens afterwards and its
outcome is only logged: a failed index write leaves a stale or missing entry
that the next update of the same blog repairs.
"""
import re
import unicodedata
from typing import List, Optional, Tuple
import structlog

from app import config
from app.db import Blog, BlogRepository
from app.rag.indexer import IndexingCoordinator, IndexResult
from app.schemas import BlogCreate, BlogUpdate

logger = structlog.get_logger()


def slugify(title: str) -> str:
    """'Xin chào Hà Nội!' -> 'xin-chao-ha-noi'."""
    text = unicodedata.normalize("NFKD", title.replace("đ", "d").replace("Đ", "D"))
    text = text.encode("ascii", "ignore").decode("ascii").lower()
    return re.sub(r"[^a-z0-9]+", "-", text).strip("-") or "post"


def _log_index_result(result: IndexResult, blog_id) -> None:
    # Index failures never fail the CRUD call
    if not result.success:
        logger.warning(
            "blog_index_sync_skipped",
            blog_id=blog_id,
            action=result.action,
            error=str(result.error),
        )


class BlogService:
    """Blog operations used by the HTTP layer."""

    def __init__(self, repository: BlogRepository, coordinator: IndexingCoordinator):
        self.repository = repository
        self.coordinator = coordinator

    def get(self, blog_id: int) -> Optional[Blog]:
        return self.repository.find_by_id(blog_id)

    def get_by_slug(self, slug: str) -> Optional[Blog]:
        return self.repository.find_by_slug(slug)

    def list(
        self,
        page: int = 0,
        size: int = None,
        category: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Tuple[List[Blog], int]:
        """Filter and page blogs.

        Args:
            page: Zero-based page number
            size: Page size, capped at config.MAX_PAGE_SIZE
            category: Exact category match
            status: Exact status match (published, draft, archived)
            search: Case-insensitive substring of title or content

        Returns:
            (page items, total matching)
        """
        size = min(size or config.DEFAULT_PAGE_SIZE, config.MAX_PAGE_SIZE)
        page = max(page, 0)

        blogs = self.repository.find_all()
        if category:
            blogs = [b for b in blogs if b.category == category]
        if status:
            blogs = [b for b in blogs if b.status == status]
        if search:
            needle = search.lower()
            blogs = [
                b for b in blogs
                if needle in (b.title or "").lower() or needle in (b.content or "").lower()
            ]

        total = len(blogs)
        start = page * size
        return blogs[start:start + size], total

    async def create(self, data: BlogCreate) -> Blog:
        logger.info("blog_create_requested", title=data.title)
        blog = self.repository.create(
            Blog(
                title=data.title,
                slug=data.slug or slugify(data.title),
                author=data.author,
                category=data.category,
                thumbnail=data.thumbnail,
                content=data.content,
                status=data.status,
            )
        )

        _log_index_result(await self.coordinator.on_created(blog), blog.id)
        return blog

    async def update(self, blog_id: int, data: BlogUpdate) -> Optional[Blog]:
        """Apply a partial update; None if the blog doesn't exist.

        The blog is always re-embedded, which also repairs an index entry
        lost to an earlier failed write.
        """
        blog = self.repository.find_by_id(blog_id)
        if blog is None:
            return None

        for name, value in data.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(blog, name, value)

        if not self.repository.update(blog):
            # Deleted after it was read
            logger.warning("blog_update_not_found", blog_id=blog_id)
            return None
        logger.info("blog_updated", blog_id=blog_id)

        _log_index_result(await self.coordinator.on_updated(blog), blog_id)
        return blog

    async def delete(self, blog_id: int) -> bool:
        """Remove the blog from the index, then from the table.

        Returns:
            True if a blog row was deleted
        """
        _log_index_result(await self.coordinator.on_deleted(blog_id), blog_id)

        deleted = self.repository.delete(blog_id) > 0
        if deleted:
            logger.info("blog_deleted", blog_id=blog_id)
        else:
            logger.warning("blog_delete_not_found", blog_id=blog_id)
        return deleted
