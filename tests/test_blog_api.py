"""End-to-end tests through the Quart app with a scripted Ollama backend."""
import asyncio

import pytest

from app.main import create_app
from app.rag.embeddings import OllamaEmbedder
from app.rag.pipeline import ERROR_ANSWER, NO_RESULTS_ANSWER
from conftest import DIM


@pytest.fixture
def app(repository, store, fake_ollama, generator):
    # Unstarted embedder: startup() loads it like in production
    embedder = OllamaEmbedder(fake_ollama, model="fake-embed", dimension=DIM)
    return create_app(
        repository=repository,
        embedder=embedder,
        vector_store=store,
        generator=generator,
        ollama=fake_ollama,
    )


def serve(app, scenario):
    async def _run():
        async with app.test_app() as test_app:
            await scenario(test_app.test_client())

    asyncio.run(_run())


async def create(client, **body):
    response = await client.post("/api/v1/blogs", json=body)
    assert response.status_code == 201
    return await response.get_json()


def test_create_then_ask(app, fake_ollama):
    async def scenario(client):
        blog = await create(client, title="Hello", content="<p>World</p>", status="published")
        assert blog["slug"] == "hello"

        response = await client.post("/api/v1/chat/ask", json={"query": "Hello", "maxResults": 5})
        assert response.status_code == 200
        data = await response.get_json()
        assert data["query"] == "Hello"
        assert data["answer"] == fake_ollama.reply
        assert [r["id"] for r in data["relatedResults"]] == [blog["id"]]
        assert data["relatedResults"][0]["summary"] == "World"

    serve(app, scenario)


def test_ask_on_empty_collection(app, fake_ollama):
    async def scenario(client):
        response = await client.post("/api/v1/chat/ask", json={"query": "anything"})
        data = await response.get_json()
        assert response.status_code == 200
        assert data["answer"] == NO_RESULTS_ANSWER
        assert data["relatedResults"] == []
        assert fake_ollama.prompts == []

    serve(app, scenario)


@pytest.mark.parametrize(
    "body",
    [
        {"query": ""},
        {"query": "   "},
        {},
        {"query": "Hello", "maxResults": 0},
        {"query": "x" * 4001},
    ],
)
def test_ask_rejects_bad_requests(app, body):
    async def scenario(client):
        response = await client.post("/api/v1/chat/ask", json=body)
        assert response.status_code == 400
        assert "error" in await response.get_json()

    serve(app, scenario)


def test_ask_rejects_non_object_body(app):
    async def scenario(client):
        response = await client.post("/api/v1/chat/ask", json=["Hello"])
        assert response.status_code == 400

    serve(app, scenario)


def test_ask_clamps_max_results(app):
    async def scenario(client):
        for i in range(3):
            await create(client, title=f"Async tip {i}", content="asyncio tasks")
        response = await client.post("/api/v1/chat/ask", json={"query": "asyncio tasks", "maxResults": 1000})
        data = await response.get_json()
        assert response.status_code == 200
        assert len(data["relatedResults"]) == 3

    serve(app, scenario)


def test_llm_failure_still_returns_200(app, fake_ollama):
    async def scenario(client):
        await create(client, title="Hello", content="World")
        fake_ollama.chat_error = RuntimeError("model crashed")

        response = await client.post("/api/v1/chat/ask", json={"query": "Hello"})
        data = await response.get_json()
        assert response.status_code == 200
        assert data["answer"] == ERROR_ANSWER
        assert data["relatedResults"] == []

    serve(app, scenario)


def test_detailed_endpoint(app, fake_ollama):
    async def scenario(client):
        blog = await create(client, title="Hello", content="World")

        response = await client.post("/api/v1/chat/detailed", json={"query": "Hello World"})
        data = await response.get_json()
        assert response.status_code == 200
        assert data["answer"].startswith("Based on what I found")
        result = data["relatedResults"][0]
        assert result["blog"]["id"] == blog["id"]
        assert result["matchedText"] == "Hello World"
        assert result["similarityScore"] == pytest.approx(1.0, abs=1e-3)
        assert fake_ollama.prompts == []

    serve(app, scenario)


def test_update_changes_answers(app, store):
    async def scenario(client):
        blog = await create(client, title="Gardening", content="tomatoes")

        response = await client.put(f"/api/v1/blogs/{blog['id']}", json={"title": "Astronomy", "content": "comets"})
        assert response.status_code == 200
        assert (await response.get_json())["title"] == "Astronomy"
        assert store.count() == 1

        response = await client.post("/api/v1/chat/detailed", json={"query": "Astronomy comets"})
        data = await response.get_json()
        assert data["relatedResults"][0]["matchedText"] == "Astronomy comets"

        response = await client.put("/api/v1/blogs/9999", json={"title": "Nope"})
        assert response.status_code == 404

    serve(app, scenario)


def test_delete_removes_from_answers(app, store, fake_ollama):
    async def scenario(client):
        blog = await create(client, title="Hello", content="World")

        response = await client.delete(f"/api/v1/blogs/{blog['id']}")
        assert response.status_code == 204
        assert store.count() == 0

        response = await client.delete(f"/api/v1/blogs/{blog['id']}")
        assert response.status_code == 404

        response = await client.post("/api/v1/chat/ask", json={"query": "Hello"})
        assert (await response.get_json())["answer"] == NO_RESULTS_ANSWER

    serve(app, scenario)


def test_create_succeeds_when_indexing_fails(app, store, fake_ollama):
    async def scenario(client):
        fake_ollama.embedding_error = ConnectionError("ollama down")
        blog = await create(client, title="Offline", content="still saved")

        assert store.count() == 0
        response = await client.get(f"/api/v1/blogs/{blog['id']}")
        assert response.status_code == 200

    serve(app, scenario)


def test_create_rejects_invalid_blog(app):
    async def scenario(client):
        response = await client.post("/api/v1/blogs", json={"title": ""})
        assert response.status_code == 400
        data = await response.get_json()
        assert data["details"][0]["field"] == "title"

    serve(app, scenario)


def test_list_and_lookup(app):
    async def scenario(client):
        await create(client, title="Python tip", category="python", status="published")
        await create(client, title="Bread", category="food")

        response = await client.get("/api/v1/blogs?category=python")
        data = await response.get_json()
        assert data["total"] == 1
        assert data["items"][0]["title"] == "Python tip"

        response = await client.get("/api/v1/blogs?size=1&page=1")
        data = await response.get_json()
        assert data["total"] == 2 and data["size"] == 1
        assert [b["title"] for b in data["items"]] == ["Python tip"]

        response = await client.get("/api/v1/blogs?page=abc")
        assert response.status_code == 400

        response = await client.get("/api/v1/blogs/slug/bread")
        assert (await response.get_json())["title"] == "Bread"

        response = await client.get("/api/v1/blogs/slug/missing")
        assert response.status_code == 404

    serve(app, scenario)


def test_health_and_statistics(app, fake_ollama):
    async def scenario(client):
        response = await client.get("/health/live")
        assert response.status_code == 200

        response = await client.get("/health/ready")
        data = await response.get_json()
        assert response.status_code == 200
        assert data == {"status": "healthy", "embedder": True, "collection": True, "ollama": True}

        await create(client, title="Hello", content="World")
        response = await client.get("/api/v1/chat/statistics")
        data = await response.get_json()
        assert data["index"]["vector_count"] == 1
        assert data["index"]["dimension"] == DIM
        assert data["defaultMaxResults"] == 5

    serve(app, scenario)
