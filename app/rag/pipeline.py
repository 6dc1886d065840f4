"""Retrieval-augmented answers over indexed blog posts.

Handles:
- Query embedding and cosine top-K search
- Resolving hits back to blogs (stale hits are dropped)
- Context and prompt construction
- Answer synthesis with a graceful fallback on any failure
"""
import asyncio
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any, Tuple
import structlog

from app import config
from app.db import Blog, BlogRepository
from app.errors import InvalidInput, RetrievalFailure
from app.rag.embeddings import OllamaEmbedder
from app.rag.generator import OllamaAnswerGenerator
from app.rag.store_faiss import FAISSVectorStore, SimilarityResult
from app.rag.text_cleaner import clean_html, excerpt

logger = structlog.get_logger()

NO_RESULTS_ANSWER = (
    "I couldn't find any content related to your question. "
    "Could you try again with different keywords?"
)
ERROR_ANSWER = (
    "Sorry, something went wrong while processing your question. "
    "Please try again later."
)

PROMPT_TEMPLATE = (
    "You are an AI assistant. Use the context below to answer the question "
    "briefly and naturally, as if two people were chatting.\n\n"
    "Context:\n{context}\n\n"
    "Question: {query}\n\n"
    "Answer:"
)

SUMMARY_CHARS = 150
DIGEST_MAX_POSTS = 3


@dataclass
class BlogSummary:
    """What the caller sees of a related blog."""

    id: int
    title: str
    slug: str
    summary: str

    @classmethod
    def from_blog(cls, blog: Blog) -> "BlogSummary":
        return cls(
            id=blog.id,
            title=blog.title,
            slug=blog.slug,
            summary=excerpt(clean_html(blog.content), SUMMARY_CHARS),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "title": self.title, "slug": self.slug, "summary": self.summary}


@dataclass
class ChatResponse:
    query: str
    answer: str
    related_results: List[BlogSummary] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query,
            "answer": self.answer,
            "relatedResults": [s.to_dict() for s in self.related_results],
        }


@dataclass
class DetailedSimilarityResult:
    blog: BlogSummary
    similarity_score: float
    matched_text: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "blog": self.blog.to_dict(),
            "similarityScore": round(self.similarity_score, 4),
            "matchedText": self.matched_text,
        }


@dataclass
class DetailedChatResponse:
    query: str
    answer: str
    similarity_results: List[DetailedSimilarityResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query,
            "answer": self.answer,
            "relatedResults": [r.to_dict() for r in self.similarity_results],
        }


@dataclass
class QueryContext:
    """Per-request retrieval state."""

    query: str
    max_results: int
    hits: List[Tuple[SimilarityResult, Blog]] = field(default_factory=list)
    stage: str = "embed"

    @property
    def blogs(self) -> List[Blog]:
        return [blog for _, blog in self.hits]


def build_context(blogs: List[Blog], max_chars: int) -> str:
    """Concatenate title and cleaned body of each blog, capped at max_chars."""
    parts = []
    total_chars = 0

    for blog in blogs:
        block = f"Title: {blog.title}\n{clean_html(blog.content)}\n\n"

        if total_chars + len(block) > max_chars:
            remaining = max_chars - total_chars
            if remaining > 200:
                parts.append(block[:remaining] + "...\n\n")
            break

        parts.append(block)
        total_chars += len(block)

    return "".join(parts).rstrip()


def build_prompt(query: str, context: str) -> str:
    return PROMPT_TEMPLATE.format(context=context, query=query)


def build_digest(summaries: List[BlogSummary]) -> str:
    """Extractive answer listing the top posts with their summaries."""
    lines = ["Based on what I found, here is what may answer your question:\n"]

    for summary in summaries[:DIGEST_MAX_POSTS]:
        lines.append(f"**{summary.title}**")
        if summary.summary:
            lines.append(summary.summary)
        lines.append("")

    if len(summaries) > DIGEST_MAX_POSTS:
        lines.append(f"And {len(summaries) - DIGEST_MAX_POSTS} more related posts...\n")

    lines.append("See the related posts below for details.")
    return "\n".join(lines)


class RetrievalAnswerPipeline:
    """Answers free-text questions from indexed blog content.

    Only a blank query or a non-positive bound is raised (InvalidInput).
    Everything after validation degrades to ERROR_ANSWER.
    """

    def __init__(
        self,
        embedder: OllamaEmbedder,
        vector_store: FAISSVectorStore,
        blogs: BlogRepository,
        generator: OllamaAnswerGenerator,
        max_results_limit: int = None,
        min_score: Optional[float] = None,
        max_context_chars: int = None,
        embedding_timeout: float = None,
        search_timeout: float = None,
        llm_timeout: float = None,
    ):
        self.embedder = embedder
        self.vector_store = vector_store
        self.blogs = blogs
        self.generator = generator
        self.max_results_limit = max_results_limit or config.MAX_RESULTS_LIMIT
        self.min_score = config.SIMILARITY_THRESHOLD if min_score is None else min_score
        self.max_context_chars = max_context_chars or config.MAX_CONTEXT_CHARS
        self.embedding_timeout = embedding_timeout or config.EMBEDDING_TIMEOUT
        self.search_timeout = search_timeout or config.VECTOR_STORE_TIMEOUT
        self.llm_timeout = llm_timeout or config.LLM_TIMEOUT

    def _validate(self, query: Optional[str], max_results: Optional[int]) -> int:
        if query is None or not query.strip():
            raise InvalidInput("Query cannot be empty")

        if max_results is None:
            max_results = config.DEFAULT_MAX_RESULTS
        if max_results <= 0:
            raise InvalidInput("max_results must be greater than 0")
        return min(max_results, self.max_results_limit)

    def _resolve(self, key: str) -> Optional[Blog]:
        try:
            blog_id = int(key)
        except (TypeError, ValueError):
            logger.warning("invalid_index_key", key=key)
            return None

        blog = self.blogs.find_by_id(blog_id)
        if blog is None:
            logger.debug("stale_index_entry_dropped", key=key)
        return blog

    async def _retrieve(self, ctx: QueryContext) -> None:
        ctx.stage = "embed"
        async with asyncio.timeout(self.embedding_timeout):
            query_vector = await self.embedder.embed(ctx.query.strip())

        ctx.stage = "search"
        async with asyncio.timeout(self.search_timeout):
            results = await self.vector_store.search(query_vector, ctx.max_results)

        ctx.stage = "resolve"
        for result in results:
            if self.min_score is not None and result.score < self.min_score:
                continue
            blog = self._resolve(result.key)
            if blog is not None:
                ctx.hits.append((result, blog))

        logger.info(
            "retrieval_completed",
            query_length=len(ctx.query),
            results_found=len(results),
            results_resolved=len(ctx.hits),
            top_score=results[0].score if results else None,
        )

    def _log_failure(self, mode: str, query: str, stage: str, e: Exception) -> None:
        failure = RetrievalFailure(stage, e)
        logger.error(
            "retrieval_pipeline_failed",
            mode=mode,
            stage=failure.stage,
            error=str(failure),
            error_type=type(e).__name__,
            query_preview=query[:100],
        )

    async def answer(self, query: str, max_results: Optional[int] = None) -> ChatResponse:
        """Answer `query` with an LLM grounded on the most similar blogs.

        Raises:
            InvalidInput: If the query is blank or max_results <= 0
        """
        ctx = QueryContext(query=query, max_results=self._validate(query, max_results))
        try:
            await self._retrieve(ctx)

            if not ctx.hits:
                return ChatResponse(query=query, answer=NO_RESULTS_ANSWER)

            ctx.stage = "generate"
            prompt = build_prompt(query, build_context(ctx.blogs, self.max_context_chars))
            async with asyncio.timeout(self.llm_timeout):
                answer = await self.generator.complete(prompt)

            logger.info("answer_generated", related=len(ctx.hits), answer_length=len(answer))
            return ChatResponse(
                query=query,
                answer=answer,
                related_results=[BlogSummary.from_blog(blog) for blog in ctx.blogs],
            )

        except Exception as e:
            self._log_failure("summary", query, ctx.stage, e)
            return ChatResponse(query=query, answer=ERROR_ANSWER)

    async def answer_detailed(
        self, query: str, max_results: Optional[int] = None
    ) -> DetailedChatResponse:
        """Like answer(), but returns scores and matched text and a digest answer.

        Raises:
            InvalidInput: If the query is blank or max_results <= 0
        """
        ctx = QueryContext(query=query, max_results=self._validate(query, max_results))
        try:
            await self._retrieve(ctx)

            if not ctx.hits:
                return DetailedChatResponse(query=query, answer=NO_RESULTS_ANSWER)

            ctx.stage = "digest"
            detailed = [
                DetailedSimilarityResult(
                    blog=BlogSummary.from_blog(blog),
                    similarity_score=result.score,
                    matched_text=result.text,
                )
                for result, blog in ctx.hits
            ]
            return DetailedChatResponse(
                query=query,
                answer=build_digest([d.blog for d in detailed]),
                similarity_results=detailed,
            )

        except Exception as e:
            self._log_failure("detailed", query, ctx.stage, e)
            return DetailedChatResponse(query=query, answer=ERROR_ANSWER)
