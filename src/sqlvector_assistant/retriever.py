"""
Context Retriever

Runs the vector search against SQL Server and turns the result rows into
a RetrievedContext.

This service:
- Opens one pymssql connection per call and closes it before returning
- Runs the blocking driver calls in the default executor
- Caps results at top_k and keeps the store's ranking order
- Wraps every driver failure in RetrievalError
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import pymssql

from .config import AssistantConfig
from .exceptions import AssistantError, RetrievalError
from .log_utils import log_error, log_info
from .models import EmbeddingSource, RetrievalQuery, RetrievedContext
from .query_composer import compose_retrieval_query, compose_vector_query

logger = logging.getLogger(__name__)

CHUNK_COLUMN = "chunk"


class ContextRetriever:
    """
    Fetches grounding chunks for a question.

    Usage:
        retriever = ContextRetriever(config)
        context = await retriever.fetch_context("What bikes do you sell?")
        if not context.is_empty:
            print(context.text)

    When config.embedding_source is "service", an embedding backend must be
    supplied; the question is embedded before the query is issued.
    """

    def __init__(self, config: AssistantConfig, embedder=None, connect=None):
        """
        Args:
            config: Resolved assistant configuration
            embedder: Object with an async embed(text) method (LLMBackend)
            connect: Replacement for pymssql.connect
        """
        self.config = config
        self.embedder = embedder
        self._connect = connect or pymssql.connect

        if config.embedding_source == EmbeddingSource.SERVICE and embedder is None:
            raise ValueError("embedding_source 'service' requires an embedder")

    def _get_connection(self):
        """Get a database connection."""
        settings = self.config.sql_settings
        return self._connect(
            login_timeout=self.config.sql_login_timeout,
            timeout=self.config.sql_query_timeout,
            **settings.to_connect_kwargs()
        )

    async def compose_query(self, question: str) -> RetrievalQuery:
        """Build the query for a question under the configured embedding source."""
        cfg = self.config
        if cfg.embedding_source == EmbeddingSource.SERVICE:
            try:
                embedding = await self.embedder.embed(question)
            except AssistantError as e:
                raise RetrievalError(f"Could not embed question: {e}") from e
            try:
                return compose_vector_query(
                    embedding,
                    top_k=cfg.top_k,
                    category=cfg.category_filter,
                    culture=cfg.culture_id,
                    embedding_dimensions=cfg.embedding_dimensions,
                    order=cfg.similarity_order,
                )
            except ValueError as e:
                raise RetrievalError(str(e)) from e

        return compose_retrieval_query(
            question,
            top_k=cfg.top_k,
            category=cfg.category_filter,
            culture=cfg.culture_id,
            embedding_dimensions=cfg.embedding_dimensions,
            embedding_model=cfg.embedding_model_name,
            order=cfg.similarity_order,
        )

    def _run_query(self, query: RetrievalQuery) -> List[Dict[str, Any]]:
        """Execute the query on a fresh connection and drain up to top_k rows."""
        conn = self._get_connection()
        try:
            cursor = conn.cursor(as_dict=True)
            cursor.execute(query.sql, query.params)
            rows = cursor.fetchmany(query.top_k)
            cursor.close()
            return rows or []
        finally:
            conn.close()

    async def execute(self, query: RetrievalQuery) -> List[str]:
        """
        Run a composed query and return chunk texts in cursor order.

        Raises:
            RetrievalError: On any connection, query or read failure
        """
        start_time = time.time()
        try:
            loop = asyncio.get_running_loop()
            rows = await loop.run_in_executor(None, self._run_query, query)
        except pymssql.Error as e:
            log_error("Context Retriever", f"SQL error: {e}")
            raise RetrievalError(f"Database query failed: {e}") from e
        except AssistantError:
            raise
        except Exception as e:
            log_error("Context Retriever", f"Unexpected error: {e}")
            logger.debug("Retrieval failure", exc_info=True)
            raise RetrievalError(f"Database query failed: {e}") from e

        chunks = []
        for row in rows[:query.top_k]:
            value: Optional[Any] = row.get(CHUNK_COLUMN)
            if value is None:
                value = ""
            elif isinstance(value, bytes):
                value = value.decode("utf-8", errors="replace")
            chunks.append(str(value))

        elapsed_ms = int((time.time() - start_time) * 1000)
        log_info("Context Retriever", f"{len(chunks)} chunk(s) in {elapsed_ms}ms")
        return chunks

    async def fetch_context(self, question: str) -> RetrievedContext:
        """
        Retrieve the context for a question.

        Returns:
            RetrievedContext, empty when the search matched nothing

        Raises:
            RetrievalError: If the search could not be completed
        """
        query = await self.compose_query(question)
        chunks = await self.execute(query)
        return RetrievedContext(chunks=chunks)

    async def test_connection(self) -> tuple:
        """
        Test database connection with SELECT 1.

        Returns:
            Tuple of (success, error_message)
        """
        def _probe():
            conn = self._get_connection()
            try:
                cursor = conn.cursor()
                cursor.execute("SELECT 1")
                row = cursor.fetchone()
                cursor.close()
                return row
            finally:
                conn.close()

        try:
            loop = asyncio.get_running_loop()
            row = await loop.run_in_executor(None, _probe)
        except pymssql.Error as e:
            logger.error(f"Connection test failed: {e}")
            return (False, str(e))
        except Exception as e:
            logger.error(f"Connection test failed: {type(e).__name__}: {e}")
            return (False, f"{type(e).__name__}: {e}")

        success = row is not None and row[0] == 1
        return (success, None if success else "Test query returned unexpected result")
