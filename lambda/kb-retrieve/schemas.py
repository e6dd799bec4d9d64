"""
Pydantic schemas for the kb-retrieve Lambda handler.

Defines request validation and response structures for the HTTP interface
the workflow trigger calls.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, StrictInt

from models import NormalizedResponse


class QueryKnowledgeBaseRequest(BaseModel):
    """
    Request body for a knowledge base query.

    The tenant is never read from the body; it comes from the authorizer
    context, so unknown fields (including "tenantId") are rejected.

    Attributes:
        query: Natural language query
        top_k: Number of chunks to retrieve (clamped by the builder)
        filter: Additional metadata filter in Bedrock JSON shape
        generate: Also generate an answer from the retrieved chunks
    """

    query: str = Field(..., description="Natural language query")
    top_k: Optional[StrictInt] = Field(
        default=None, alias="topK", description="Number of chunks to retrieve"
    )
    filter: Optional[Dict[str, Any]] = Field(
        default=None, description="Metadata filter (equals / in / andAll / orAll)"
    )
    generate: bool = Field(default=False, description="Generate an answer from retrieved chunks")

    class Config:
        """Pydantic configuration."""

        extra = "forbid"
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "query": "What is our refund policy?",
                "topK": 5,
                "filter": {"equals": {"key": "doc_type", "value": "policy"}},
                "generate": True,
            }
        }


class ChunkItem(BaseModel):
    """A retrieved chunk as returned to the workflow."""

    source_id: str = Field(..., alias="sourceId")
    text: str
    score: Optional[float] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        """Pydantic configuration."""

        populate_by_name = True


class QueryKnowledgeBaseResponse(BaseModel):
    """
    Response body for a knowledge base query.

    Attributes:
        generated_text: Generated answer (omitted for retrieval-only requests)
        chunks: Retrieved chunks in relevance order
        count: Number of chunks
        session_id: Generation session ID (omitted when absent)
    """

    generated_text: Optional[str] = Field(default=None, alias="generatedText")
    chunks: List[ChunkItem] = Field(default_factory=list)
    count: int
    session_id: Optional[str] = Field(default=None, alias="sessionId")

    class Config:
        """Pydantic configuration."""

        populate_by_name = True

    @classmethod
    def from_normalized(cls, response: NormalizedResponse) -> "QueryKnowledgeBaseResponse":
        return cls(
            generated_text=response.generated_text,
            chunks=[
                ChunkItem(
                    source_id=chunk.source_id,
                    text=chunk.text,
                    score=chunk.score,
                    metadata=chunk.metadata,
                )
                for chunk in response.chunks
            ],
            count=len(response.chunks),
            session_id=response.session_id,
        )

    def to_body(self) -> Dict[str, Any]:
        """Serialize with camelCase keys, omitting absent optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ErrorResponse(BaseModel):
    """
    Error response schema.

    Attributes:
        error: Error message
        details: Optional additional error details
    """

    error: str = Field(..., description="Error message")
    details: Optional[str] = Field(default=None, description="Additional error details")
