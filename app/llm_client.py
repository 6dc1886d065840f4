"""Ollama HTTP client used for both embeddings and chat completions."""
from typing import Any, Dict, List, Optional
import httpx
import structlog

from app import config

logger = structlog.get_logger()

TAGS_TIMEOUT = 5.0


class OllamaClient:
    """Async client for the three Ollama endpoints the assistant uses.

    A fresh httpx.AsyncClient is opened per call, so one instance can be
    shared by every request. Pass `transport` to stub the server in tests.
    """

    def __init__(
        self,
        base_url: str = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or config.OLLAMA_BASE_URL).rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        timeout: float = None,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(
                timeout=timeout or self.timeout,
                transport=self.transport,
            ) as client:
                response = await client.request(method, url, json=payload)
                response.raise_for_status()
                return response.json()

        except httpx.ConnectError as e:
            logger.error("ollama_connection_error", error=str(e), base_url=self.base_url)
            raise
        except httpx.HTTPError as e:
            logger.error(
                "ollama_http_error",
                path=path,
                error=str(e),
                status_code=getattr(getattr(e, "response", None), "status_code", None),
            )
            raise

    async def chat(
        self,
        messages: List[Dict[str, str]],
        model: str = None,
        temperature: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Non-streaming chat completion; the reply is in data["message"]["content"].

        Raises:
            httpx.HTTPError: On API or connection errors
        """
        payload = {
            "model": model or config.CHAT_MODEL,
            "messages": messages,
            "stream": False,
        }
        if temperature is not None:
            payload["options"] = {"temperature": temperature}

        logger.info("ollama_chat_request", model=payload["model"], message_count=len(messages))
        data = await self._request("POST", "/api/chat", payload)
        logger.info(
            "ollama_chat_response",
            model=payload["model"],
            response_length=len(data.get("message", {}).get("content", "")),
        )
        return data

    async def embeddings(self, prompt: str, model: str = None) -> Dict[str, Any]:
        """Embed one prompt; the vector is in data["embedding"]."""
        model = model or config.EMBEDDING_MODEL
        logger.debug("ollama_embedding_request", model=model, prompt_length=len(prompt))
        return await self._request("POST", "/api/embeddings", {"model": model, "prompt": prompt})

    async def list_models(self) -> List[str]:
        """Model names installed on the server (used by the readiness probe)."""
        data = await self._request("GET", "/api/tags", timeout=TAGS_TIMEOUT)
        return [m["name"] for m in data.get("models", [])]
