"""Keeps the vector collection in step with the blog lifecycle.

The collection is a derived, searchable copy of the blog table. Every method
here reports failure through IndexResult and never raises, so a blog write
that already committed can't be failed by the index.

Update is a two-step protocol: delete the key, then insert the new vector.
Between the two calls the key is briefly absent from search results.
"""
import asyncio
from dataclasses import dataclass
from typing import Iterable, Optional, Dict
import structlog

from app import config
from app.db import Blog
from app.errors import IndexWriteFailure
from app.rag.embeddings import OllamaEmbedder
from app.rag.store_faiss import FAISSVectorStore
from app.rag.text_cleaner import clean_html

logger = structlog.get_logger()


@dataclass
class IndexResult:
    """Outcome of one index write."""

    success: bool
    key: str
    action: str
    error: Optional[IndexWriteFailure] = None


def document_key(blog_id) -> str:
    """Vector key for a blog id."""
    return str(blog_id)


def document_text(blog: Blog) -> str:
    """Text that gets embedded and stored for a blog: title plus cleaned body."""
    return f"{blog.title or ''} {clean_html(blog.content)}".strip()


class IndexingCoordinator:
    """Translates blog create/update/delete into vector collection writes."""

    def __init__(
        self,
        embedder: OllamaEmbedder,
        vector_store: FAISSVectorStore,
        call_timeout: float = None,
    ):
        """Initialize the coordinator.

        Args:
            embedder: Embedding provider
            vector_store: Vector collection
            call_timeout: Deadline in seconds for each embed/store call
        """
        self.embedder = embedder
        self.vector_store = vector_store
        self.call_timeout = call_timeout or config.INDEX_CALL_TIMEOUT

    def _failed(self, key: str, action: str, e: BaseException) -> IndexResult:
        failure = IndexWriteFailure(key, action, e)
        logger.error(
            "index_write_failed",
            key=key,
            action=action,
            error=str(e),
            error_type=type(e).__name__,
        )
        return IndexResult(success=False, key=key, action=action, error=failure)

    async def _embed(self, blog: Blog):
        text = document_text(blog)
        async with asyncio.timeout(self.call_timeout):
            vector = await self.embedder.embed(text)
        return text, vector

    async def on_created(self, blog: Blog) -> IndexResult:
        """Embed a new blog and insert it."""
        key = document_key(blog.id)
        try:
            text, vector = await self._embed(blog)
            async with asyncio.timeout(self.call_timeout):
                await self.vector_store.upsert(key, text, vector)
        except Exception as e:
            return self._failed(key, "create", e)

        logger.info("blog_indexed", key=key, text_length=len(text))
        return IndexResult(success=True, key=key, action="create")

    async def on_updated(self, blog: Blog) -> IndexResult:
        """Re-embed a changed blog, drop its old entry and insert the new one."""
        key = document_key(blog.id)
        try:
            text, vector = await self._embed(blog)
            async with asyncio.timeout(self.call_timeout):
                await self.vector_store.delete_by_key(key)
            async with asyncio.timeout(self.call_timeout):
                await self.vector_store.upsert(key, text, vector)
        except Exception as e:
            return self._failed(key, "update", e)

        logger.info("blog_reindexed", key=key, text_length=len(text))
        return IndexResult(success=True, key=key, action="update")

    async def on_deleted(self, blog_id) -> IndexResult:
        """Remove a deleted blog from the collection."""
        key = document_key(blog_id)
        try:
            async with asyncio.timeout(self.call_timeout):
                removed = await self.vector_store.delete_by_key(key)
        except Exception as e:
            return self._failed(key, "delete", e)

        logger.info("blog_unindexed", key=key, removed=removed)
        return IndexResult(success=True, key=key, action="delete")

    async def reindex_all(self, blogs: Iterable[Blog], progress_callback=None) -> Dict[str, int]:
        """Index every blog into the loaded collection.

        Args:
            blogs: Blogs to index
            progress_callback: Optional callback(current, total, blog)

        Returns:
            {"indexed": n, "failed": n}
        """
        blogs = list(blogs)

        stats = {"indexed": 0, "failed": 0}
        for idx, blog in enumerate(blogs, 1):
            if progress_callback:
                progress_callback(idx, len(blogs), blog)
            result = await self.on_created(blog)
            stats["indexed" if result.success else "failed"] += 1

        logger.info("reindex_completed", **stats)
        return stats
