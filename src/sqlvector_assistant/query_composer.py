"""
Retrieval Query Composer

Builds the T-SQL vector search over AdventureWorks product descriptions.
The question is the only bound parameter; the join path, category and
culture filters and the similarity ordering are fixed per configuration.

Usage:
    from sqlvector_assistant.query_composer import compose_retrieval_query

    query = compose_retrieval_query("What bikes do you sell?")
    cursor.execute(query.sql, query.params)
"""

import json
from typing import List

from .models import RetrievalQuery, EmbeddingSource


DEFAULT_TOP_K = 5
DEFAULT_DIMENSIONS = 768

# ProductDescription -> culture link -> ProductModel -> Product -> Subcategory -> Category
_JOIN_PATH = """
            FROM
                Production.ProductDescription AS pd
            INNER JOIN Production.ProductModelProductDescriptionCulture AS pmpdc
                ON pd.ProductDescriptionID = pmpdc.ProductDescriptionID
            INNER JOIN Production.ProductModel AS pm
                ON pmpdc.ProductModelID = pm.ProductModelID
            INNER JOIN Production.Product AS p
                ON pm.ProductModelID = p.ProductModelID
            INNER JOIN Production.ProductSubcategory AS psc
                ON p.ProductSubcategoryID = psc.ProductSubcategoryID
            INNER JOIN Production.ProductCategory AS pc
                ON psc.ProductCategoryID = pc.ProductCategoryID"""


def _sql_literal(value: str) -> str:
    """
    Escape a configured value for use inside a T-SQL string literal.

    pymssql interpolates parameters with %-formatting, so literal percent
    signs are doubled as well.
    """
    return value.replace("'", "''").replace("%", "%%")


def _sql_identifier(value: str) -> str:
    return "[" + value.replace("]", "]]") + "]"


def _search_body(
    top_k: int,
    category: str,
    culture: str,
    order: str,
) -> str:
    direction = "DESC" if order.lower() == "desc" else "ASC"
    return f"""
            SELECT TOP {int(top_k)}
                pd.chunk{_JOIN_PATH}
            WHERE
                pc.Name LIKE '%%{_sql_literal(category)}%%'
                AND pmpdc.CultureID = '{_sql_literal(culture)}'
            ORDER BY
                VECTOR_DISTANCE('cosine', @search_vector, pd.embeddings) {direction};
        """


def compose_retrieval_query(
    question: str,
    top_k: int = DEFAULT_TOP_K,
    category: str = "Bikes",
    culture: str = "en",
    embedding_dimensions: int = DEFAULT_DIMENSIONS,
    embedding_model: str = "ollama",
    order: str = "asc",
) -> RetrievalQuery:
    """
    Compose a vector search that has SQL Server embed the question itself.

    Args:
        question: Raw user question; bound verbatim as the only parameter
        top_k: Maximum number of chunks to return
        category: Substring matched against ProductCategory.Name
        culture: ProductModelProductDescriptionCulture.CultureID
        embedding_dimensions: Dimension of the stored embeddings
        embedding_model: Name of the EXTERNAL MODEL registered in SQL Server
        order: Direction of the VECTOR_DISTANCE ordering; "asc" puts the
            nearest (most similar) chunks first

    Returns:
        RetrievalQuery with pymssql-style %s placeholder
    """
    sql = (
        f"\n            DECLARE @search_vector VECTOR({int(embedding_dimensions)}) = "
        f"AI_GENERATE_EMBEDDINGS(%s USE MODEL {_sql_identifier(embedding_model)});\n"
        + _search_body(top_k, category, culture, order)
    )
    return RetrievalQuery(
        sql=sql,
        params=(question,),
        top_k=top_k,
        embedding_source=EmbeddingSource.DATABASE,
    )


def compose_vector_query(
    embedding: List[float],
    top_k: int = DEFAULT_TOP_K,
    category: str = "Bikes",
    culture: str = "en",
    embedding_dimensions: int = DEFAULT_DIMENSIONS,
    order: str = "asc",
) -> RetrievalQuery:
    """
    Compose the same search for an embedding computed outside the database.

    The vector is bound as its JSON array text and cast to VECTOR(n).

    Raises:
        ValueError: If the embedding does not match the stored dimension
    """
    if len(embedding) != embedding_dimensions:
        raise ValueError(
            f"Embedding has {len(embedding)} dimensions, expected {embedding_dimensions}"
        )

    sql = (
        f"\n            DECLARE @search_vector VECTOR({int(embedding_dimensions)}) = "
        f"CAST(%s AS VECTOR({int(embedding_dimensions)}));\n"
        + _search_body(top_k, category, culture, order)
    )
    vector_text = json.dumps([float(x) for x in embedding])
    return RetrievalQuery(
        sql=sql,
        params=(vector_text,),
        top_k=top_k,
        embedding_source=EmbeddingSource.SERVICE,
    )
