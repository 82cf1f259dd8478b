"""
Context retriever tests against a fake pymssql connection.
"""

import json

import pymssql
import pytest

from sqlvector_assistant.config import AssistantConfig
from sqlvector_assistant.exceptions import GenerationConnectError, RetrievalError
from sqlvector_assistant.retriever import ContextRetriever
from tests.conftest import CONNECTION_STRING


class TestFetchContext:
    """Tests for ContextRetriever.fetch_context."""

    @pytest.mark.parametrize("count", [0, 1, 3, 5])
    async def test_line_count_matches_rows(self, config, fake_sql, rows, count):
        texts = [f"chunk {i}" for i in range(count)]
        sql = fake_sql(rows=rows(*texts))
        retriever = ContextRetriever(config, connect=sql.connect)

        context = await retriever.fetch_context("What bikes do you sell?")

        assert context.chunks == texts
        assert len(context.text.splitlines()) == count

    async def test_preserves_cursor_order(self, config, fake_sql, rows):
        sql = fake_sql(rows=rows("zeta", "alpha", "mu"))
        retriever = ContextRetriever(config, connect=sql.connect)

        context = await retriever.fetch_context("q")

        assert context.text == "- zeta\n- alpha\n- mu\n"

    async def test_caps_at_top_k(self, fake_sql, rows):
        config = AssistantConfig(connection_string=CONNECTION_STRING, top_k=2)
        sql = fake_sql(rows=rows("a", "b", "c"))
        retriever = ContextRetriever(config, connect=sql.connect)

        context = await retriever.fetch_context("q")

        assert context.chunks == ["a", "b"]
        sql.cursor.fetchmany.assert_called_once_with(2)

    async def test_binds_question_verbatim(self, config, fake_sql, rows):
        sql = fake_sql(rows=rows("a"))
        retriever = ContextRetriever(config, connect=sql.connect)

        await retriever.fetch_context("  What bikes do you sell?")

        (statement, params), = sql.executed
        assert params == ("  What bikes do you sell?",)
        assert "AI_GENERATE_EMBEDDINGS(%s" in statement

    async def test_null_chunk_keeps_its_line(self, config, fake_sql):
        sql = fake_sql(rows=[{"chunk": "a"}, {"chunk": None}, {"chunk": "c"}])
        retriever = ContextRetriever(config, connect=sql.connect)

        context = await retriever.fetch_context("q")

        assert context.chunks == ["a", "", "c"]
        assert context.text.splitlines() == ["- a", "- ", "- c"]

    async def test_decodes_bytes(self, config, fake_sql):
        sql = fake_sql(rows=[{"chunk": b"bytes chunk"}, {"chunk": "text"}])
        retriever = ContextRetriever(config, connect=sql.connect)

        context = await retriever.fetch_context("q")

        assert context.chunks == ["bytes chunk", "text"]

    async def test_uses_dict_cursor(self, config, fake_sql):
        sql = fake_sql()
        retriever = ContextRetriever(config, connect=sql.connect)

        await retriever.fetch_context("q")

        sql.connection.cursor.assert_called_once_with(as_dict=True)

    async def test_connects_with_parsed_settings_and_timeouts(self, config, fake_sql):
        sql = fake_sql()
        retriever = ContextRetriever(config, connect=sql.connect)

        await retriever.fetch_context("q")

        sql.connect.assert_called_once_with(
            server="localhost",
            port="1433",
            database="AdventureWorks",
            user="sa",
            password="secret",
            login_timeout=15,
            timeout=30,
        )

    async def test_new_connection_per_call(self, config, fake_sql):
        sql = fake_sql()
        retriever = ContextRetriever(config, connect=sql.connect)

        await retriever.fetch_context("same question")
        await retriever.fetch_context("same question")

        assert sql.connect.call_count == 2
        assert sql.connection.close.call_count == 2


class TestRetrievalFailures:
    """Tests for driver failures surfacing as RetrievalError."""

    async def test_query_error_raises_and_closes(self, config, fake_sql):
        sql = fake_sql(error=pymssql.OperationalError("Invalid object name 'Production.ProductDescription'"))
        retriever = ContextRetriever(config, connect=sql.connect)

        with pytest.raises(RetrievalError, match="Invalid object name"):
            await retriever.fetch_context("q")

        sql.connection.close.assert_called_once()

    async def test_connect_error_raises(self, config, fake_sql):
        sql = fake_sql()
        sql.connect.side_effect = pymssql.OperationalError("Adaptive Server connection failed")
        retriever = ContextRetriever(config, connect=sql.connect)

        with pytest.raises(RetrievalError, match="connection failed"):
            await retriever.fetch_context("q")

    async def test_unexpected_error_wrapped(self, config, fake_sql):
        sql = fake_sql(error=RuntimeError("cursor broke"))
        retriever = ContextRetriever(config, connect=sql.connect)

        with pytest.raises(RetrievalError, match="cursor broke"):
            await retriever.fetch_context("q")


class TestServiceEmbedding:
    """Tests for embedding the question through the generation service."""

    def service_config(self):
        return AssistantConfig(
            connection_string=CONNECTION_STRING,
            embedding_source="service",
            embedding_dimensions=3,
        )

    async def test_embeds_then_binds_vector(self, fake_sql, rows, scripted_backend):
        backend = scripted_backend(embedding=[0.1, 0.2, 0.3])
        sql = fake_sql(rows=rows("a"))
        retriever = ContextRetriever(self.service_config(), embedder=backend, connect=sql.connect)

        context = await retriever.fetch_context("What bikes do you sell?")

        assert backend.embedded == ["What bikes do you sell?"]
        (statement, params), = sql.executed
        assert json.loads(params[0]) == [0.1, 0.2, 0.3]
        assert "CAST(%s AS VECTOR(3))" in statement
        assert context.chunks == ["a"]

    async def test_dimension_mismatch_is_retrieval_error(self, fake_sql, scripted_backend):
        backend = scripted_backend(embedding=[0.1])
        sql = fake_sql()
        retriever = ContextRetriever(self.service_config(), embedder=backend, connect=sql.connect)

        with pytest.raises(RetrievalError, match="expected 3"):
            await retriever.fetch_context("q")
        sql.connect.assert_not_called()

    async def test_embedding_failure_is_retrieval_error(self, fake_sql, scripted_backend):
        backend = scripted_backend()

        async def failing_embed(text, **kwargs):
            raise GenerationConnectError("Embedding failed: model not found", status_code=404)

        backend.embed = failing_embed
        retriever = ContextRetriever(self.service_config(), embedder=backend, connect=fake_sql().connect)

        with pytest.raises(RetrievalError, match="model not found"):
            await retriever.fetch_context("q")

    def test_requires_embedder(self):
        with pytest.raises(ValueError):
            ContextRetriever(self.service_config())


class TestConnectionProbe:
    """Tests for test_connection."""

    async def test_success(self, config, fake_sql):
        sql = fake_sql()
        retriever = ContextRetriever(config, connect=sql.connect)

        assert await retriever.test_connection() == (True, None)
        sql.connection.close.assert_called_once()

    async def test_failure(self, config, fake_sql):
        sql = fake_sql()
        sql.connect.side_effect = pymssql.InterfaceError("login failed")
        retriever = ContextRetriever(config, connect=sql.connect)

        ok, error = await retriever.test_connection()

        assert ok is False
        assert "login failed" in error

    async def test_os_error_reported_not_raised(self, config, fake_sql):
        sql = fake_sql()
        sql.connect.side_effect = OSError("Name or service not known")
        retriever = ContextRetriever(config, connect=sql.connect)

        ok, error = await retriever.test_connection()

        assert ok is False
        assert "OSError" in error
        assert "Name or service not known" in error

    async def test_query_failure_still_closes(self, config, fake_sql):
        sql = fake_sql()
        sql.cursor.execute.side_effect = RuntimeError("driver state")
        retriever = ContextRetriever(config, connect=sql.connect)

        ok, error = await retriever.test_connection()

        assert ok is False
        assert "driver state" in error
        sql.connection.close.assert_called_once()
