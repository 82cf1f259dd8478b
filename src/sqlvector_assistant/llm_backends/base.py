"""
LLM Backend Base
================

Abstract base class for generation backends.
All backends must inherit from LLMBackend.
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, AsyncIterator, List

from ..models import GenerationChunk, GenerationResponse


class LLMBackend(ABC):
    """
    Abstract base class for generation backends.

    All backends must implement:
    - generate_stream(): Stream a response from a prompt
    - health_check(): Check if the backend is available

    Backends may optionally implement:
    - embed(): Generate embeddings
    - list_models(): List models served by the backend
    """

    def __init__(
        self,
        model: str = None,
        base_url: str = None,
        embedding_model: str = None,
        timeout: int = 120,
        connect_timeout: int = 10,
        **kwargs
    ):
        """
        Initialize the backend.

        Args:
            model: Generation model name
            base_url: Base URL for the API
            embedding_model: Model used by embed()
            timeout: Read timeout in seconds
            connect_timeout: Connect timeout in seconds
            **kwargs: Additional backend-specific options
        """
        self.model = model or self.default_model
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self.embedding_model = embedding_model
        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self.extra_options = kwargs

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend name (e.g., 'ollama')."""
        pass

    @property
    @abstractmethod
    def default_model(self) -> str:
        pass

    @property
    @abstractmethod
    def default_base_url(self) -> str:
        pass

    @abstractmethod
    def generate_stream(self, prompt: str, **kwargs) -> AsyncIterator[GenerationChunk]:
        """
        Stream a response from a prompt.

        Yields:
            GenerationChunk with partial content, in arrival order
        """
        pass

    async def generate(self, prompt: str, **kwargs) -> GenerationResponse:
        """
        Generate a complete response by draining generate_stream().

        Backends with a native non-streaming call may override this.
        """
        parts: List[str] = []
        finish_reason: Optional[str] = None
        metadata: Dict[str, Any] = {}

        async for chunk in self.generate_stream(prompt, **kwargs):
            parts.append(chunk.content)
            if chunk.is_final:
                finish_reason = chunk.finish_reason
                metadata = chunk.metadata

        return GenerationResponse(
            content="".join(parts),
            model=self.model,
            finish_reason=finish_reason,
            prompt_tokens=metadata.get("prompt_eval_count", 0),
            completion_tokens=metadata.get("eval_count", 0),
            duration_ms=int(metadata.get("total_duration", 0) / 1_000_000),
        )

    async def embed(self, text: str, **kwargs) -> List[float]:
        """
        Generate embedding vector for text.

        Raises:
            NotImplementedError: If backend doesn't support embeddings
        """
        raise NotImplementedError(f"{self.name} backend does not support embeddings")

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """
        Check if the backend is available and working.

        Returns:
            Dict with:
            - healthy: bool
            - model: str (current model)
            - available_models: list (if applicable)
            - error: str (if not healthy)
        """
        pass

    async def list_models(self) -> List[str]:
        raise NotImplementedError(f"{self.name} backend does not support model listing")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model={self.model!r}, base_url={self.base_url!r})"
