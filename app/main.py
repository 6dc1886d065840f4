"""Quart application: blog CRUD and the content assistant chat API."""
from typing import Optional
from quart import Quart, request, jsonify
from pydantic import ValidationError
import structlog

from app import config
from app.blog_service import BlogService
from app.db import BlogRepository
from app.errors import InvalidInput, NotReady
from app.llm_client import OllamaClient
from app.logging_setup import configure_logging
from app.rag.embeddings import OllamaEmbedder
from app.rag.generator import OllamaAnswerGenerator
from app.rag.indexer import IndexingCoordinator
from app.rag.pipeline import RetrievalAnswerPipeline, ChatResponse, ERROR_ANSWER
from app.rag.store_faiss import FAISSVectorStore
from app.schemas import ChatRequest, BlogCreate, BlogUpdate

logger = structlog.get_logger()


def _validation_error(e: ValidationError):
    return jsonify({
        "error": "Invalid request body",
        "details": [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ],
    }), 400


def create_app(
    repository: Optional[BlogRepository] = None,
    embedder: Optional[OllamaEmbedder] = None,
    vector_store: Optional[FAISSVectorStore] = None,
    generator: Optional[OllamaAnswerGenerator] = None,
    ollama: Optional[OllamaClient] = None,
) -> Quart:
    """Build the application and wire its long-lived collaborators.

    Collaborators not passed in are built from config. The embedding model is
    loaded and the vector collection provisioned once, before serving.
    """
    configure_logging()

    if ollama is None and (embedder is None or generator is None):
        ollama = OllamaClient()
    repository = repository or BlogRepository()
    embedder = embedder or OllamaEmbedder(ollama, dimension=config.EMBEDDING_DIMENSION)
    vector_store = vector_store or FAISSVectorStore()
    generator = generator or OllamaAnswerGenerator(ollama)

    coordinator = IndexingCoordinator(embedder, vector_store)
    blog_service = BlogService(repository, coordinator)
    pipeline = RetrievalAnswerPipeline(embedder, vector_store, repository, generator)

    app = Quart(__name__)
    app.extensions["content_assistant"] = {
        "repository": repository,
        "embedder": embedder,
        "vector_store": vector_store,
        "coordinator": coordinator,
        "blog_service": blog_service,
        "pipeline": pipeline,
    }

    @app.before_serving
    async def startup():
        """Load the embedding model and provision the collection (fatal on failure)."""
        repository.init_database()
        await embedder.start()
        await vector_store.ensure_collection(config.COLLECTION_NAME, embedder.dimension)
        logger.info(
            "app_started",
            collection=config.COLLECTION_NAME,
            dimension=embedder.dimension,
            indexed=vector_store.count(),
        )

    @app.after_serving
    async def shutdown():
        await embedder.close()
        logger.info("app_stopped")

    async def _chat_request():
        data = await request.get_json(silent=True)
        if not isinstance(data, dict):
            raise InvalidInput("Request body must be a JSON object")

        chat_request = ChatRequest.model_validate(data)
        query = chat_request.query
        if not query.strip():
            raise InvalidInput("Query cannot be empty")
        if len(query) > config.MAX_QUERY_LENGTH:
            raise InvalidInput(
                f"Query exceeds maximum length of {config.MAX_QUERY_LENGTH} characters"
            )

        max_results = min(
            chat_request.max_results or config.DEFAULT_MAX_RESULTS,
            config.MAX_RESULTS_LIMIT,
        )
        return query, max_results

    @app.route("/api/v1/chat/ask", methods=["POST"])
    async def ask():
        """Answer a question from related blog posts.

        Expects JSON body: {"query": "...", "maxResults": 5}
        Returns JSON: {"query", "answer", "relatedResults": [{id, title, slug, summary}]}
        """
        query = None
        try:
            query, max_results = await _chat_request()
            logger.info("chat_request_received", query_length=len(query), max_results=max_results)

            response = await pipeline.answer(query, max_results)

            logger.info("chat_response_sent", related=len(response.related_results))
            return jsonify(response.to_dict())

        except ValidationError as e:
            return _validation_error(e)
        except InvalidInput as e:
            logger.warning("chat_request_rejected", error=str(e))
            return jsonify({"error": str(e)}), 400
        except Exception as e:
            logger.error("chat_endpoint_error", error=str(e), error_type=type(e).__name__)
            fallback = ChatResponse(query=query or "", answer=ERROR_ANSWER)
            return jsonify(fallback.to_dict()), 500

    @app.route("/api/v1/chat/detailed", methods=["POST"])
    async def ask_detailed():
        """Like /ask, with similarity scores and matched text per related post."""
        try:
            query, max_results = await _chat_request()
            logger.info("detailed_chat_request_received", query_length=len(query), max_results=max_results)

            response = await pipeline.answer_detailed(query, max_results)
            return jsonify(response.to_dict())

        except ValidationError as e:
            return _validation_error(e)
        except InvalidInput as e:
            logger.warning("chat_request_rejected", error=str(e))
            return jsonify({"error": str(e)}), 400
        except Exception as e:
            logger.error("detailed_chat_endpoint_error", error=str(e), error_type=type(e).__name__)
            return jsonify({"error": "Failed to process detailed chat request"}), 500

    @app.route("/api/v1/chat/statistics")
    async def chat_statistics():
        """Chat configuration and collection stats."""
        return jsonify({
            "maxContextLength": config.MAX_QUERY_LENGTH,
            "defaultMaxResults": config.DEFAULT_MAX_RESULTS,
            "maxSimilarResults": config.MAX_RESULTS_LIMIT,
            "similarityThreshold": config.SIMILARITY_THRESHOLD,
            "chatModel": config.CHAT_MODEL,
            "embeddingModel": config.EMBEDDING_MODEL,
            "temperature": config.LLM_TEMPERATURE,
            "index": vector_store.get_stats(),
        })

    @app.route("/api/v1/blogs", methods=["GET"])
    async def list_blogs():
        """List blogs with optional category/status/search filters and paging."""
        args = request.args
        try:
            page = int(args.get("page", 0))
            size = int(args.get("size", config.DEFAULT_PAGE_SIZE))
        except ValueError:
            return jsonify({"error": "page and size must be integers"}), 400

        blogs, total = blog_service.list(
            page=page,
            size=size,
            category=args.get("category"),
            status=args.get("status"),
            search=args.get("search"),
        )
        return jsonify({
            "items": [b.to_dict() for b in blogs],
            "total": total,
            "page": max(page, 0),
            "size": min(size, config.MAX_PAGE_SIZE),
        })

    @app.route("/api/v1/blogs/<int:blog_id>", methods=["GET"])
    async def get_blog(blog_id: int):
        blog = blog_service.get(blog_id)
        if blog is None:
            return jsonify({"error": "Blog not found"}), 404
        return jsonify(blog.to_dict())

    @app.route("/api/v1/blogs/slug/<slug>", methods=["GET"])
    async def get_blog_by_slug(slug: str):
        blog = blog_service.get_by_slug(slug)
        if blog is None:
            return jsonify({"error": "Blog not found"}), 404
        return jsonify(blog.to_dict())

    @app.route("/api/v1/blogs", methods=["POST"])
    async def create_blog():
        """Create a blog; indexing happens after the row is saved."""
        try:
            data = BlogCreate.model_validate(await request.get_json(silent=True) or {})
        except ValidationError as e:
            return _validation_error(e)

        blog = await blog_service.create(data)
        return jsonify(blog.to_dict()), 201

    @app.route("/api/v1/blogs/<int:blog_id>", methods=["PUT"])
    async def update_blog(blog_id: int):
        try:
            data = BlogUpdate.model_validate(await request.get_json(silent=True) or {})
        except ValidationError as e:
            return _validation_error(e)

        blog = await blog_service.update(blog_id, data)
        if blog is None:
            return jsonify({"error": "Blog not found"}), 404
        return jsonify(blog.to_dict())

    @app.route("/api/v1/blogs/<int:blog_id>", methods=["DELETE"])
    async def delete_blog(blog_id: int):
        """Delete a blog.

        Returns:
            204 No Content if deleted
            404 Not Found if the blog doesn't exist
        """
        if await blog_service.delete(blog_id):
            return "", 204
        return jsonify({"error": "Blog not found"}), 404

    @app.route("/health/ready")
    async def health_ready():
        """Readiness probe: embedder loaded, collection loaded, Ollama reachable."""
        checks = {
            "status": "healthy",
            "embedder": embedder.ready,
            "collection": vector_store.ready,
        }

        if ollama is not None:
            try:
                await ollama.list_models()
                checks["ollama"] = True
            except Exception as e:
                logger.error("health_check_failed", error=str(e))
                checks["ollama"] = False
                checks["error"] = str(e)

        if not all(v for k, v in checks.items() if k not in ("status", "error")):
            checks["status"] = "unhealthy"

        status_code = 200 if checks["status"] == "healthy" else 503
        return jsonify(checks), status_code

    @app.route("/health/live")
    async def health_live():
        """Liveness probe - check if app is running."""
        return jsonify({"status": "alive"}), 200

    @app.errorhandler(NotReady)
    async def not_ready(error):
        logger.warning("service_not_ready", error=str(error))
        return jsonify({"error": "Service is starting up, please retry"}), 503

    @app.errorhandler(404)
    async def not_found(error):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    async def internal_error(error):
        logger.error("internal_server_error", error=str(error))
        return jsonify({"error": "Internal server error"}), 500

    return app


if __name__ == "__main__":
    # For development - run with hypercorn "app.main:create_app()" in production
    create_app().run(host="0.0.0.0", port=5000, debug=True)
