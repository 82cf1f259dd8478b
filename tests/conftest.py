"""
Shared pytest configuration and fixtures for assistant tests.

Provides fake SQL Server connections, a scripted generation backend,
an NDJSON mock transport for the Ollama client and a scripted console.
"""

import json
from typing import List, Optional
from unittest.mock import MagicMock

import httpx
import pytest

from sqlvector_assistant.config import AssistantConfig
from sqlvector_assistant.llm_backends.base import LLMBackend
from sqlvector_assistant.models import GenerationChunk


CONNECTION_STRING = (
    "Server=localhost,1433;Database=AdventureWorks;User Id=sa;Password=secret;"
)


# =============================================================================
# Configuration Fixtures
# =============================================================================

@pytest.fixture
def config():
    """Config with a connection string and default retrieval settings."""
    return AssistantConfig(connection_string=CONNECTION_STRING)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Keep SQLVECTOR_* variables and stray config files out of every test."""
    import os
    for key in list(os.environ):
        if key.startswith("SQLVECTOR_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)


# =============================================================================
# SQL Server Fakes
# =============================================================================

class FakeSQL:
    """Stand-in for pymssql.connect with a scripted cursor."""

    def __init__(self, rows: Optional[List[dict]] = None, error: Optional[Exception] = None):
        self.cursor = MagicMock()
        self.cursor.fetchmany.return_value = rows or []
        self.cursor.fetchone.return_value = (1,)
        if error is not None:
            self.cursor.execute.side_effect = error

        self.connection = MagicMock()
        self.connection.cursor.return_value = self.cursor

        self.connect = MagicMock(return_value=self.connection)

    @property
    def executed(self):
        """(sql, params) of every execute() call."""
        return [c.args for c in self.cursor.execute.call_args_list]


@pytest.fixture
def fake_sql():
    """Factory: fake_sql(rows=[...], error=...) -> FakeSQL."""
    return FakeSQL


def chunk_rows(*texts):
    return [{"chunk": text} for text in texts]


@pytest.fixture
def rows():
    """Factory building result rows from chunk texts."""
    return chunk_rows


# =============================================================================
# Generation Fakes
# =============================================================================

class ScriptedBackend(LLMBackend):
    """Backend that streams a fixed list of fragments and records prompts."""

    def __init__(self, fragments=None, error: Optional[Exception] = None, embedding=None):
        super().__init__(model="test-model", base_url="http://localhost:11434")
        self.fragments = list(fragments or [])
        self.error = error
        self.embedding = embedding
        self.prompts: List[str] = []
        self.embedded: List[str] = []

    @property
    def name(self) -> str:
        return "scripted"

    @property
    def default_model(self) -> str:
        return "test-model"

    @property
    def default_base_url(self) -> str:
        return "http://localhost:11434"

    async def generate_stream(self, prompt: str, **kwargs):
        self.prompts.append(prompt)
        for fragment in self.fragments:
            yield GenerationChunk(content=fragment)
        if self.error is not None:
            raise self.error
        yield GenerationChunk(content="", is_final=True, finish_reason="stop")

    async def embed(self, text: str, **kwargs):
        self.embedded.append(text)
        return self.embedding

    async def health_check(self):
        return {"healthy": True, "model": self.model, "model_available": True}


@pytest.fixture
def scripted_backend():
    """Factory: scripted_backend(["Hel", "lo"]) -> ScriptedBackend."""
    return ScriptedBackend


class NDJSONTransport(httpx.MockTransport):
    """Mock Ollama server returning the given lines as the response body."""

    def __init__(self, lines: List[str], status_code: int = 200):
        self.requests: List[httpx.Request] = []
        body = "\n".join(lines).encode("utf-8")

        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return httpx.Response(status_code, content=body)

        super().__init__(handler)

    @property
    def payloads(self):
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture
def ndjson_transport():
    """Factory: ndjson_transport(lines, status_code=200)."""
    return NDJSONTransport


# =============================================================================
# Console Fakes
# =============================================================================

class ScriptedConsole:
    """Reader/writer pair fed from a list of input lines."""

    def __init__(self, lines: List[Optional[str]]):
        self.lines = list(lines)
        self.prompts: List[str] = []
        self.output: List[str] = []

    async def read(self, prompt: str) -> Optional[str]:
        self.prompts.append(prompt)
        if not self.lines:
            return None
        return self.lines.pop(0)

    def write(self, text: str) -> None:
        self.output.append(text)

    @property
    def text(self) -> str:
        return "".join(self.output)


@pytest.fixture
def console():
    """Factory: console(["question", "exit"]) -> ScriptedConsole."""
    return ScriptedConsole


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: marks test as unit test (fast, no external deps)"
    )
    config.addinivalue_line(
        "markers", "integration: marks test as integration test (requires SQL Server and Ollama)"
    )
