"""Embedding provider backed by an Ollama embedding model.

The provider is started once at process startup and shared by every request.
After start() it holds no mutable state, so concurrent embed() calls are safe.
"""
from typing import List, Optional
import structlog

from app import config
from app.errors import InvalidInput, NotReady
from app.llm_client import OllamaClient

logger = structlog.get_logger()

PROBE_TEXT = "dimension probe"


class OllamaEmbedder:
    """Turns text into fixed-dimension dense vectors."""

    def __init__(
        self,
        client: OllamaClient,
        model: str = None,
        dimension: Optional[int] = None,
    ):
        """Initialize the embedder.

        Args:
            client: Ollama API client
            model: Embedding model name (default from config)
            dimension: Expected vector length; None/0 means use the probed length
        """
        self.client = client
        self.model = model or config.EMBEDDING_MODEL
        self._expected_dimension = dimension or None
        self._probed_dimension: Optional[int] = None
        self._ready = False

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def dimension(self) -> Optional[int]:
        """Vector length agreed with the vector collection."""
        return self._expected_dimension or self._probed_dimension

    async def start(self) -> None:
        """Load the model by embedding a probe string.

        Raises:
            NotReady: If the model can't be reached or returns nothing
        """
        logger.info("embedding_model_loading", model=self.model)
        try:
            vector = await self._embed_raw(PROBE_TEXT)
        except Exception as e:
            logger.error("embedding_model_load_failed", model=self.model, error=str(e))
            raise NotReady(f"Embedding model {self.model} failed to load: {e}") from e

        self._probed_dimension = len(vector)
        if self._expected_dimension and self._probed_dimension != self._expected_dimension:
            logger.warning(
                "unexpected_embedding_dimension",
                model=self.model,
                expected=self._expected_dimension,
                actual=self._probed_dimension,
            )

        self._ready = True
        logger.info("embedding_model_loaded", model=self.model, dimension=self.dimension)

    async def close(self) -> None:
        self._ready = False
        logger.info("embedding_model_closed", model=self.model)

    async def _embed_raw(self, text: str) -> List[float]:
        response = await self.client.embeddings(prompt=text, model=self.model)
        vector = response.get("embedding") or []
        if not vector:
            raise RuntimeError("Empty embedding returned from Ollama")
        return [float(v) for v in vector]

    async def embed(self, text: Optional[str]) -> List[float]:
        """Embed a single text.

        Args:
            text: Non-blank text

        Returns:
            Embedding vector

        Raises:
            InvalidInput: If text is None or blank
            NotReady: If start() hasn't completed
        """
        if text is None or not text.strip():
            raise InvalidInput("Text to embed cannot be null or empty")

        if not self._ready:
            raise NotReady("Embedding model is not initialized")

        vector = await self._embed_raw(text.strip())

        # A changed dimension invalidates stored vectors; report, don't fail
        if self.dimension and len(vector) != self.dimension:
            logger.warning(
                "unexpected_embedding_dimension",
                model=self.model,
                expected=self.dimension,
                actual=len(vector),
            )

        return vector
