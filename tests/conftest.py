"""Shared fixtures: a scripted Ollama server, temp FAISS collection and temp blog table."""
import asyncio
import hashlib
import re

import pytest

from app.db import Blog, BlogRepository
from app.rag.embeddings import OllamaEmbedder
from app.rag.generator import OllamaAnswerGenerator
from app.rag.indexer import IndexingCoordinator
from app.rag.pipeline import RetrievalAnswerPipeline
from app.rag.store_faiss import FAISSVectorStore

DIM = 128
COLLECTION = "test_collection"

TOKEN_PATTERN = re.compile(r"\w+")


def hashed_vector(text: str, dimension: int = DIM) -> list:
    """Bag-of-words embedding: identical texts embed identically, shared words raise cosine."""
    vector = [0.0] * dimension
    for token in TOKEN_PATTERN.findall(text.lower()):
        slot = int(hashlib.md5(token.encode("utf-8")).hexdigest(), 16) % dimension
        vector[slot] += 1.0
    return vector


class FakeOllamaClient:
    """Stands in for OllamaClient with deterministic embeddings and scripted chat replies."""

    def __init__(self, dimension: int = DIM):
        self.dimension = dimension
        self.reply = "Here is what the posts say."
        self.embedding_error = None
        self.chat_error = None
        self.embedding_delay = 0.0
        self.chat_delay = 0.0
        self.prompts = []
        self.embedded = []

    async def embeddings(self, prompt, model=None):
        if self.embedding_delay:
            await asyncio.sleep(self.embedding_delay)
        if self.embedding_error:
            raise self.embedding_error
        self.embedded.append(prompt)
        return {"embedding": hashed_vector(prompt, self.dimension)}

    async def chat(self, messages, model=None, temperature=None):
        if self.chat_delay:
            await asyncio.sleep(self.chat_delay)
        self.prompts.append(messages[-1]["content"])
        if self.chat_error:
            raise self.chat_error
        return {"message": {"role": "assistant", "content": self.reply}}

    async def list_models(self):
        return ["fake-embed", "fake-chat"]


@pytest.fixture
def fake_ollama():
    return FakeOllamaClient()


@pytest.fixture
def embedder(fake_ollama):
    embedder = OllamaEmbedder(fake_ollama, model="fake-embed", dimension=DIM)
    asyncio.run(embedder.start())
    return embedder


@pytest.fixture
def store(tmp_path):
    store = FAISSVectorStore(index_dir=tmp_path / "vectors")
    asyncio.run(store.ensure_collection(COLLECTION, DIM))
    return store


@pytest.fixture
def repository(tmp_path):
    repository = BlogRepository(db_path=tmp_path / "content.sqlite")
    repository.init_database()
    return repository


@pytest.fixture
def generator(fake_ollama):
    return OllamaAnswerGenerator(fake_ollama, model="fake-chat")


@pytest.fixture
def coordinator(embedder, store):
    return IndexingCoordinator(embedder, store, call_timeout=5.0)


@pytest.fixture
def pipeline(embedder, store, repository, generator):
    return RetrievalAnswerPipeline(
        embedder,
        store,
        repository,
        generator,
        max_results_limit=20,
        min_score=None,
    )


@pytest.fixture
def add_blog(repository, coordinator):
    """Create a blog row and index it, like BlogService.create does."""

    def _add(title, content="", **fields):
        blog = repository.create(Blog(title=title, slug=fields.pop("slug", title.lower()), content=content, **fields))
        result = asyncio.run(coordinator.on_created(blog))
        assert result.success, result.error
        return blog

    return _add
