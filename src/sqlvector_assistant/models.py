"""
SQLVector Assistant Models
==========================

Pydantic models for the per-turn data that flows through the RAG loop:
retrieval query, retrieved context, generation request/stream chunks and
the outcome of a processed turn.
"""

from enum import Enum
from typing import Optional, List, Dict, Any, Tuple
from pydantic import BaseModel, Field


# =============================================================================
# Enums
# =============================================================================

class EmbeddingSource(str, Enum):
    """Where the question embedding is computed."""
    DATABASE = "database"   # AI_GENERATE_EMBEDDINGS inside the query
    SERVICE = "service"     # Ollama /api/embeddings before the query


class LoopState(str, Enum):
    """Interaction loop states."""
    AWAITING_INPUT = "awaiting_input"
    PROCESSING = "processing"
    STOPPED = "stopped"


class TurnStatus(str, Enum):
    """How a single question turn ended."""
    ANSWERED = "answered"
    EMPTY_CONTEXT = "empty_context"
    RETRIEVAL_FAILED = "retrieval_failed"
    GENERATION_FAILED = "generation_failed"
    SKIPPED = "skipped"


# =============================================================================
# Retrieval
# =============================================================================

class RetrievalQuery(BaseModel):
    """A T-SQL statement with its single bound parameter."""
    sql: str
    params: Tuple[str, ...]
    top_k: int = 5
    embedding_source: EmbeddingSource = EmbeddingSource.DATABASE

    @property
    def parameter(self) -> str:
        """The bound value (question text or serialized embedding)."""
        return self.params[0]


class RetrievedContext(BaseModel):
    """Chunks returned by the store, in similarity order."""
    chunks: List[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.chunks

    @property
    def text(self) -> str:
        """Each chunk on its own line, bulleted."""
        return "".join(f"- {chunk}\n" for chunk in self.chunks)

    def __len__(self) -> int:
        return len(self.chunks)


# =============================================================================
# Generation
# =============================================================================

class GenerationRequest(BaseModel):
    """Body of an Ollama /api/generate call."""
    model: str
    prompt: str
    stream: bool = True

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump()


class GenerationChunk(BaseModel):
    """One decoded line of the streamed response."""
    content: str = ""
    is_final: bool = False
    finish_reason: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class GenerationResponse(BaseModel):
    """Collected (non-streamed) generation result."""
    content: str
    model: str
    finish_reason: Optional[str] = None
    prompt_tokens: int = 0
    completion_tokens: int = 0
    duration_ms: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    @property
    def success(self) -> bool:
        return bool(self.content)


# =============================================================================
# Turn Outcome
# =============================================================================

class TurnOutcome(BaseModel):
    """Result of processing one question."""
    status: TurnStatus
    question: str = ""
    chunk_count: int = 0
    answer_chars: int = 0
    error: Optional[str] = None

    class Config:
        use_enum_values = True

    @property
    def failed(self) -> bool:
        return self.status in (TurnStatus.RETRIEVAL_FAILED, TurnStatus.GENERATION_FAILED)
