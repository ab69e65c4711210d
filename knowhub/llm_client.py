"""Ollama client wrapper used as the embedding and generation provider."""
import httpx
from typing import List, Dict, Optional, Protocol
import structlog

from knowhub import config
from knowhub.errors import ProviderError

logger = structlog.get_logger()


class EmbeddingProvider(Protocol):
    async def embed(self, text: str) -> List[float]: ...


class GenerationProvider(Protocol):
    async def generate(self, prompt: str) -> str: ...


class OllamaClient:
    """Async client for interacting with Ollama API."""

    def __init__(
        self,
        base_url: str = None,
        chat_model: str = None,
        embedding_model: str = None,
        timeout: float = None,
    ):
        """Initialize Ollama client.

        Args:
            base_url: Ollama API base URL (defaults to config.OLLAMA_BASE_URL)
            chat_model: Model used by generate() (defaults to config.CHAT_MODEL)
            embedding_model: Model used by embed() (defaults to config.EMBEDDING_MODEL)
            timeout: Request timeout in seconds
        """
        self.base_url = base_url or config.OLLAMA_BASE_URL
        self.chat_model = chat_model or config.CHAT_MODEL
        self.embedding_model = embedding_model or config.EMBEDDING_MODEL
        self.timeout = timeout or config.OLLAMA_TIMEOUT

    async def chat(
        self,
        messages: List[Dict[str, str]],
        model: str = None,
        temperature: Optional[float] = None,
    ) -> Dict:
        """Send a non-streaming chat completion request to Ollama.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Model to use (defaults to the client's chat model)
            temperature: Sampling temperature (0.0-2.0)

        Returns:
            Response dict with 'message' containing 'content'

        Raises:
            httpx.HTTPError: On API errors
        """
        model = model or self.chat_model

        payload = {
            "model": model,
            "messages": messages,
            "stream": False,
        }

        if temperature is not None:
            payload["options"] = {"temperature": temperature}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                logger.info(
                    "ollama_chat_request",
                    model=model,
                    message_count=len(messages),
                )

                response = await client.post(
                    f"{self.base_url}/api/chat",
                    json=payload,
                )
                response.raise_for_status()

                data = response.json()

                logger.info(
                    "ollama_chat_response",
                    model=model,
                    response_length=len(data.get("message", {}).get("content", "")),
                )

                return data

        except httpx.ConnectError as e:
            logger.error("ollama_connection_error", error=str(e), base_url=self.base_url)
            raise
        except httpx.HTTPError as e:
            logger.error(
                "ollama_http_error",
                error=str(e),
                status_code=getattr(getattr(e, "response", None), "status_code", None),
            )
            raise

    async def embeddings(
        self,
        prompt: str,
        model: str = None,
    ) -> Dict:
        """Generate embeddings for a text prompt.

        Args:
            prompt: Text to embed
            model: Model to use (defaults to the client's embedding model)

        Returns:
            Response dict with 'embedding' list

        Raises:
            httpx.HTTPError: On API errors
        """
        model = model or self.embedding_model

        payload = {
            "model": model,
            "prompt": prompt,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                logger.debug(
                    "ollama_embedding_request",
                    model=model,
                    prompt_length=len(prompt),
                )

                response = await client.post(
                    f"{self.base_url}/api/embeddings",
                    json=payload,
                )
                response.raise_for_status()

                data = response.json()

                logger.debug(
                    "ollama_embedding_response",
                    model=model,
                    dimension=len(data.get("embedding", [])),
                )

                return data

        except httpx.HTTPError as e:
            logger.error("ollama_embedding_error", error=str(e))
            raise

    async def embed(self, text: str) -> List[float]:
        """Embed one text.

        Raises:
            ProviderError: If the request fails, the body is not JSON or it
                holds no vector
        """
        try:
            response = await self.embeddings(prompt=text)
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderError(f"Embedding request failed: {e}") from e

        embedding = response.get("embedding", [])
        if not embedding:
            raise ProviderError("Empty embedding returned from Ollama")
        return embedding

    async def generate(self, prompt: str) -> str:
        """Generate an answer for a fully rendered prompt.

        Raises:
            ProviderError: If the request fails, the body is not JSON or the
                model returns nothing
        """
        try:
            response = await self.chat([{"role": "user", "content": prompt}])
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderError(f"Generation request failed: {e}") from e

        content = response.get("message", {}).get("content", "")
        if not content:
            logger.error("empty_ollama_response", response=response)
            raise ProviderError("Empty response from LLM")
        return content

    async def detect_embedding_dimension(self) -> int:
        """Detect embedding dimension by embedding a test string.

        Raises:
            ProviderError: If embedding fails
        """
        logger.info("detecting_embedding_dimension", model=self.embedding_model)
        dimension = len(await self.embed("test"))
        logger.info("embedding_dimension_detected", dimension=dimension)
        return dimension

    async def list_models(self) -> List[str]:
        """List all available Ollama models.

        Raises:
            httpx.HTTPError: On API errors
        """
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                response = await client.get(f"{self.base_url}/api/tags")
                response.raise_for_status()
                data = response.json()
                return [m["name"] for m in data.get("models", [])]
        except httpx.HTTPError as e:
            logger.error("ollama_list_models_error", error=str(e))
            raise
