"""
Ollama Backend
==============

Generation backend for a locally hosted Ollama server.
https://github.com/ollama/ollama/blob/main/docs/api.md

/api/generate streams newline-delimited JSON. Each line is decoded on its
own; blank or malformed lines are skipped without failing the response.
"""

import json
import logging
import time
from typing import Optional, Dict, Any, AsyncIterator, List

import httpx

from ..exceptions import GenerationConnectError, GenerationStreamError
from ..log_utils import log_debug
from ..models import GenerationChunk, GenerationRequest
from .base import LLMBackend

logger = logging.getLogger(__name__)

# Final-line fields worth keeping on the last chunk
_FINAL_METADATA_KEYS = (
    "total_duration",
    "load_duration",
    "prompt_eval_count",
    "prompt_eval_duration",
    "eval_count",
    "eval_duration",
)


def decode_stream_line(line: str) -> Optional[GenerationChunk]:
    """
    Decode one line of an /api/generate stream.

    Returns:
        GenerationChunk, or None for blank and undecodable lines

    Raises:
        GenerationStreamError: If the server reports an error object
    """
    line = line.strip()
    if not line:
        return None

    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        log_debug("Ollama Backend", f"Skipping malformed stream line: {line[:80]}")
        return None

    if not isinstance(data, dict):
        return None

    if "error" in data:
        raise GenerationStreamError(f"Ollama reported an error: {data['error']}")

    content = data.get("response")
    is_final = bool(data.get("done", False))
    metadata: Dict[str, Any] = {}
    if is_final:
        metadata = {key: data[key] for key in _FINAL_METADATA_KEYS if key in data}

    return GenerationChunk(
        content=content if isinstance(content, str) else "",
        is_final=is_final,
        finish_reason=data.get("done_reason") if is_final else None,
        metadata=metadata,
    )


class OllamaBackend(LLMBackend):
    """
    Ollama generation backend.

    Example:
        backend = OllamaBackend(model="llama3", base_url="http://localhost:11434")

        async for chunk in backend.generate_stream("Tell me about touring bikes"):
            print(chunk.content, end="", flush=True)
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None, **kwargs):
        # transport lets callers (and tests) swap the network layer
        self._transport = transport
        super().__init__(**kwargs)
        if not self.embedding_model:
            self.embedding_model = "nomic-embed-text"

    @property
    def name(self) -> str:
        return "ollama"

    @property
    def default_model(self) -> str:
        return "llama3"

    @property
    def default_base_url(self) -> str:
        return "http://localhost:11434"

    def _timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=float(self.connect_timeout),
            read=float(self.timeout),
            write=float(self.connect_timeout),
            pool=float(self.connect_timeout),
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self._timeout(),
            transport=self._transport,
        )

    async def generate_stream(self, prompt: str, **kwargs) -> AsyncIterator[GenerationChunk]:
        """
        Stream a completion from /api/generate.

        The stream ends at the first line flagged "done", or when the server
        closes the connection.

        Raises:
            GenerationConnectError: Non-success status, or failure before the
                first decoded line
            GenerationStreamError: Transport failure after streaming started
        """
        request = GenerationRequest(model=kwargs.get("model") or self.model, prompt=prompt)
        started = False
        start_time = time.time()

        try:
            async with self._client() as client:
                async with client.stream("POST", "/api/generate", json=request.to_payload()) as response:
                    if not response.is_success:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        raise GenerationConnectError(
                            f"Ollama returned status {response.status_code}: {body[:200]}",
                            status_code=response.status_code,
                        )

                    async for line in response.aiter_lines():
                        chunk = decode_stream_line(line)
                        if chunk is None:
                            continue
                        started = True
                        yield chunk
                        if chunk.is_final:
                            break

        except httpx.TimeoutException as e:
            logger.error(f"Ollama request timed out: {e}")
            if started:
                raise GenerationStreamError(f"Generation stream timed out: {e}") from e
            raise GenerationConnectError(f"Generation request timed out: {e}") from e

        except httpx.HTTPError as e:
            logger.error(f"Ollama transport error: {e}")
            if started:
                raise GenerationStreamError(f"Generation stream interrupted: {e}") from e
            raise GenerationConnectError(f"Could not reach Ollama at {self.base_url}: {e}") from e

        logger.debug(f"Generation stream finished in {int((time.time() - start_time) * 1000)}ms")

    async def embed(self, text: str, model: str = None, **kwargs) -> List[float]:
        """Generate an embedding using /api/embeddings."""
        payload = {"model": model or self.embedding_model, "prompt": text}

        try:
            async with self._client() as client:
                response = await client.post("/api/embeddings", json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise GenerationConnectError(
                f"Embedding failed: {e.response.text[:200]}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise GenerationConnectError(f"Embedding request failed: {e}") from e

        embedding = data.get("embedding")
        if not embedding:
            raise GenerationStreamError("Embedding response contained no vector")
        return [float(x) for x in embedding]

    async def list_models(self) -> List[str]:
        """List models pulled on the Ollama server."""
        async with self._client() as client:
            response = await client.get("/api/tags")
            response.raise_for_status()
            data = response.json()
        return [m.get("name") for m in data.get("models", [])]

    async def health_check(self) -> Dict[str, Any]:
        """Check if the Ollama server is reachable and has the model."""
        try:
            models = await self.list_models()
        except httpx.HTTPStatusError as e:
            return {
                "healthy": False,
                "model": self.model,
                "error": f"API returned status {e.response.status_code}",
            }
        except httpx.HTTPError as e:
            return {
                "healthy": False,
                "model": self.model,
                "error": f"Connection failed: {e}",
            }

        # Ollama names carry a tag ("llama3:latest")
        available = {m.split(":")[0] for m in models if m} | set(models)
        return {
            "healthy": True,
            "model": self.model,
            "available_models": models[:20],
            "model_available": self.model in available,
        }
