"""
LLM Backends
============

Pluggable generation backends. Ollama is the built-in backend.

Usage:
    from sqlvector_assistant.llm_backends import get_backend

    backend = get_backend("ollama", model="llama3", base_url="http://localhost:11434")

    async for chunk in backend.generate_stream("Which bikes are lightest?"):
        print(chunk.content, end="")
"""

from .base import LLMBackend
from .ollama import OllamaBackend, decode_stream_line

# Registry of available backends
_BACKENDS = {
    "ollama": OllamaBackend,
}


def get_backend(
    backend_name: str,
    model: str = None,
    base_url: str = None,
    **kwargs
) -> LLMBackend:
    """
    Get a backend instance by name.

    Args:
        backend_name: Name of backend (ollama)
        model: Model name to use
        base_url: Optional custom base URL
        **kwargs: Additional backend-specific options

    Returns:
        LLMBackend instance
    """
    backend_name = backend_name.lower()
    if backend_name not in _BACKENDS:
        available = ", ".join(_BACKENDS.keys())
        raise ValueError(f"Unknown backend: {backend_name}. Available: {available}")

    backend_class = _BACKENDS[backend_name]
    return backend_class(model=model, base_url=base_url, **kwargs)


def get_backend_for_config(config, **kwargs) -> LLMBackend:
    """Build the backend described by an AssistantConfig."""
    return get_backend(
        config.llm_backend,
        model=config.llm_model,
        base_url=config.llm_base_url,
        embedding_model=config.llm_embedding_model,
        timeout=config.llm_timeout,
        connect_timeout=config.llm_connect_timeout,
        **kwargs
    )


def register_backend(name: str, backend_class: type) -> None:
    """
    Register a custom backend.

    Args:
        name: Name to register the backend under
        backend_class: Class that extends LLMBackend
    """
    if not issubclass(backend_class, LLMBackend):
        raise TypeError("Backend must be a subclass of LLMBackend")
    _BACKENDS[name.lower()] = backend_class


def list_backends() -> list:
    """List available backend names."""
    return list(_BACKENDS.keys())


__all__ = [
    "LLMBackend",
    "OllamaBackend",
    "decode_stream_line",
    "get_backend",
    "get_backend_for_config",
    "register_backend",
    "list_backends",
]
