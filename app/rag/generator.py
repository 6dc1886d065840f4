"""Answer generation over the Ollama chat API."""
from typing import Optional
import structlog

from app import config
from app.llm_client import OllamaClient

logger = structlog.get_logger()


class OllamaAnswerGenerator:
    """Single-prompt completion: prompt in, text out."""

    def __init__(
        self,
        client: OllamaClient,
        model: str = None,
        temperature: Optional[float] = None,
    ):
        self.client = client
        self.model = model or config.CHAT_MODEL
        self.temperature = config.LLM_TEMPERATURE if temperature is None else temperature

    async def complete(self, prompt: str) -> str:
        """Send `prompt` as one user message and return the reply text.

        Raises:
            RuntimeError: If the model returns an empty message
            httpx.HTTPError: On API errors
        """
        response = await self.client.chat(
            [{"role": "user", "content": prompt}],
            model=self.model,
            temperature=self.temperature,
        )
        content = response.get("message", {}).get("content", "")

        if not content or not content.strip():
            logger.error("empty_llm_response", model=self.model)
            raise RuntimeError("Empty response from LLM")

        return content.strip()
