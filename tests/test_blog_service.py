"""Tests for blog CRUD and its index sync."""
import asyncio

from app.blog_service import BlogService, slugify
from app.schemas import BlogCreate, BlogUpdate
from conftest import hashed_vector


def run(coro):
    return asyncio.run(coro)


def test_slugify():
    assert slugify("Hello, World!") == "hello-world"
    assert slugify("Xin chào Hà Nội") == "xin-chao-ha-noi"
    assert slugify("Đà Lạt") == "da-lat"
    assert slugify("!!!") == "post"


def test_create_persists_and_indexes(repository, coordinator, store):
    service = BlogService(repository, coordinator)

    blog = run(service.create(BlogCreate(title="Hello World", content="<p>Body</p>", status="published")))

    assert blog.id is not None
    assert blog.slug == "hello-world"
    assert repository.find_by_id(blog.id).title == "Hello World"
    assert store.keys() == [str(blog.id)]


def test_create_survives_index_failure(repository, coordinator, store, fake_ollama):
    service = BlogService(repository, coordinator)
    fake_ollama.embedding_error = ConnectionError("ollama down")

    blog = run(service.create(BlogCreate(title="Offline post")))

    assert repository.find_by_id(blog.id) is not None
    assert store.count() == 0


def test_update_applies_fields_and_repairs_index(repository, coordinator, store, fake_ollama):
    service = BlogService(repository, coordinator)
    fake_ollama.embedding_error = ConnectionError("ollama down")
    blog = run(service.create(BlogCreate(title="Draft", content="first")))
    assert store.count() == 0

    fake_ollama.embedding_error = None
    updated = run(service.update(blog.id, BlogUpdate(content="second version")))

    assert updated.title == "Draft"
    assert updated.content == "second version"
    assert repository.find_by_id(blog.id).content == "second version"
    hits = run(store.search(hashed_vector("Draft second version"), 1))
    assert hits[0].key == str(blog.id)
    assert hits[0].text == "Draft second version"


def test_update_missing_blog_returns_none(repository, coordinator):
    service = BlogService(repository, coordinator)
    assert run(service.update(404, BlogUpdate(title="x"))) is None


def test_delete_removes_row_and_entry(repository, coordinator, store):
    service = BlogService(repository, coordinator)
    blog = run(service.create(BlogCreate(title="Short lived")))

    assert run(service.delete(blog.id)) is True
    assert repository.find_by_id(blog.id) is None
    assert store.count() == 0
    assert run(service.delete(blog.id)) is False


def test_list_filters_and_pages(repository, coordinator):
    service = BlogService(repository, coordinator)
    for i in range(5):
        run(service.create(BlogCreate(title=f"Python tip {i}", category="python", status="published")))
    run(service.create(BlogCreate(title="Bread baking", category="food")))

    items, total = service.list(category="python", size=2, page=1)
    assert total == 5
    assert [b.title for b in items] == ["Python tip 2", "Python tip 1"]

    items, total = service.list(search="BREAD")
    assert total == 1 and items[0].category == "food"

    items, total = service.list(status="draft")
    assert [b.title for b in items] == ["Bread baking"]


def test_update_of_concurrently_deleted_blog_is_not_reindexed(repository, coordinator, store, monkeypatch):
    service = BlogService(repository, coordinator)
    blog = run(service.create(BlogCreate(title="Racing", content="first")))
    run(coordinator.on_deleted(blog.id))

    def delete_then_update(row):
        repository.delete(row.id)
        return 0

    monkeypatch.setattr(repository, "update", delete_then_update)

    assert run(service.update(blog.id, BlogUpdate(content="second"))) is None
    assert repository.find_by_id(blog.id) is None
    assert store.count() == 0
