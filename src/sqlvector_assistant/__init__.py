"""
SQLVector Assistant
===================

Console Retrieval-Augmented-Generation assistant for the AdventureWorks
sample database:
- Vector search with SQL Server's native VECTOR type
- Grounded prompt construction
- Streaming answers from a local Ollama server

Usage:
    from sqlvector_assistant import load_config, ContextRetriever, InteractionLoop
    from sqlvector_assistant.llm_backends import get_backend_for_config

    config = load_config().validate_required()
    backend = get_backend_for_config(config)
    loop = InteractionLoop(ContextRetriever(config, embedder=backend), backend, config)
    await loop.run()
"""

import logging

from .config import AssistantConfig, load_config, parse_connection_string
from .exceptions import (
    AssistantError,
    ConfigurationMissingError,
    RetrievalError,
    GenerationError,
    GenerationConnectError,
    GenerationStreamError,
)
from .models import (
    EmbeddingSource,
    LoopState,
    TurnStatus,
    RetrievalQuery,
    RetrievedContext,
    GenerationRequest,
    GenerationChunk,
    GenerationResponse,
    TurnOutcome,
)
from .query_composer import compose_retrieval_query, compose_vector_query
from .prompt import build_prompt
from .retriever import ContextRetriever
from .loop import InteractionLoop

__version__ = "1.0.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    # Configuration
    "AssistantConfig",
    "load_config",
    "parse_connection_string",
    # Exceptions
    "AssistantError",
    "ConfigurationMissingError",
    "RetrievalError",
    "GenerationError",
    "GenerationConnectError",
    "GenerationStreamError",
    # Models
    "EmbeddingSource",
    "LoopState",
    "TurnStatus",
    "RetrievalQuery",
    "RetrievedContext",
    "GenerationRequest",
    "GenerationChunk",
    "GenerationResponse",
    "TurnOutcome",
    # Pipeline
    "compose_retrieval_query",
    "compose_vector_query",
    "build_prompt",
    "ContextRetriever",
    "InteractionLoop",
]
