"""
Pydantic models for tenant-scoped knowledge base retrieval.

Defines the metadata filter tree and the request-scoped value objects passed
between the request builder, the knowledge base client and the response
normalizer. The filter tree follows the Bedrock Knowledge Bases filter
grammar so it serializes to the wire format one node at a time.
"""

from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

from pydantic import BaseModel, Field, ValidationError

from errors import InvalidInput

# Metadata values the knowledge base can filter on
Scalar = Union[bool, int, float, str]

# Deepest filter nesting accepted from callers (root counts as level 1)
MAX_FILTER_DEPTH = 5


def scalar_equal(left: Any, right: Any) -> bool:
    """Compare metadata values without treating booleans as numbers."""
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


# ============================================================================
# Metadata Filters
# ============================================================================


class FilterNode(BaseModel):
    """Base class for a node in a metadata filter expression tree."""

    class Config:
        """Pydantic configuration."""

        frozen = True

    def matches(self, metadata: Mapping[str, Any]) -> bool:
        """
        Evaluate the filter against a document's metadata.

        Args:
            metadata: Metadata attributes of a retrieved document

        Returns:
            bool: True if the document satisfies the filter
        """
        raise NotImplementedError

    def keys(self) -> Set[str]:
        """Return every metadata key referenced anywhere in the tree."""
        raise NotImplementedError

    def to_wire(self) -> Dict[str, Any]:
        """Serialize to the Bedrock RetrievalFilter JSON shape."""
        raise NotImplementedError


class EqualsFilter(FilterNode):
    """Matches documents whose metadata `key` equals `value`."""

    key: str = Field(..., min_length=1)
    value: Scalar

    def matches(self, metadata: Mapping[str, Any]) -> bool:
        return self.key in metadata and scalar_equal(metadata[self.key], self.value)

    def keys(self) -> Set[str]:
        return {self.key}

    def to_wire(self) -> Dict[str, Any]:
        return {"equals": {"key": self.key, "value": self.value}}


class InFilter(FilterNode):
    """Matches documents whose metadata `key` is one of `values`."""

    key: str = Field(..., min_length=1)
    values: Tuple[Scalar, ...] = Field(..., min_length=1)

    def matches(self, metadata: Mapping[str, Any]) -> bool:
        return self.key in metadata and any(
            scalar_equal(metadata[self.key], value) for value in self.values
        )

    def keys(self) -> Set[str]:
        return {self.key}

    def to_wire(self) -> Dict[str, Any]:
        return {"in": {"key": self.key, "value": list(self.values)}}


class AndFilter(FilterNode):
    """Conjunction. Bedrock requires at least two members in a group."""

    filters: Tuple[FilterNode, ...] = Field(..., min_length=2)

    def matches(self, metadata: Mapping[str, Any]) -> bool:
        return all(f.matches(metadata) for f in self.filters)

    def keys(self) -> Set[str]:
        return set().union(*(f.keys() for f in self.filters))

    def to_wire(self) -> Dict[str, Any]:
        return {"andAll": [f.to_wire() for f in self.filters]}


class OrFilter(FilterNode):
    """Disjunction. Bedrock requires at least two members in a group."""

    filters: Tuple[FilterNode, ...] = Field(..., min_length=2)

    def matches(self, metadata: Mapping[str, Any]) -> bool:
        return any(f.matches(metadata) for f in self.filters)

    def keys(self) -> Set[str]:
        return set().union(*(f.keys() for f in self.filters))

    def to_wire(self) -> Dict[str, Any]:
        return {"orAll": [f.to_wire() for f in self.filters]}


def equals(key: str, value: Any) -> EqualsFilter:
    return EqualsFilter(key=key, value=value)


def is_in(key: str, values: Iterable[Any]) -> InFilter:
    return InFilter(key=key, values=tuple(values))


def and_all(*filters: FilterNode) -> AndFilter:
    return AndFilter(filters=filters)


def or_all(*filters: FilterNode) -> OrFilter:
    return OrFilter(filters=filters)


_GROUP_OPERATORS = {"andAll": AndFilter, "orAll": OrFilter}


def parse_filter(data: Any, depth: int = 1) -> FilterNode:
    """
    Parse a filter from its Bedrock JSON shape.

    Accepts {"equals": {"key", "value"}}, {"in": {"key", "value": [...]}},
    {"andAll": [...]} and {"orAll": [...]}. Already-parsed nodes are
    returned unchanged. Groups may nest at most MAX_FILTER_DEPTH levels.

    Args:
        data: Filter in wire format (typically from a request body)
        depth: Nesting level of `data` (1 for the root)

    Returns:
        FilterNode: Parsed filter tree

    Raises:
        InvalidInput: If the filter is malformed, nested too deeply, or uses an
            unsupported operator
    """
    if isinstance(data, FilterNode):
        return data

    if depth > MAX_FILTER_DEPTH:
        raise InvalidInput(f"Filter is nested deeper than {MAX_FILTER_DEPTH} levels")

    if not isinstance(data, dict) or len(data) != 1:
        raise InvalidInput("Filter must be an object with exactly one operator")

    operator, operand = next(iter(data.items()))

    try:
        if operator in _GROUP_OPERATORS:
            if not isinstance(operand, list):
                raise InvalidInput(f"'{operator}' expects a list of filters")
            return _GROUP_OPERATORS[operator](filters=tuple(
                parse_filter(f, depth + 1) for f in operand
            ))

        if operator in ("equals", "in"):
            if not isinstance(operand, dict):
                raise InvalidInput(f"'{operator}' expects an object with 'key' and 'value'")

            if operator == "equals":
                return EqualsFilter(key=operand.get("key"), value=operand.get("value"))

            values = operand.get("value")
            if not isinstance(values, list):
                raise InvalidInput("'in' expects 'value' to be a list")
            return InFilter(key=operand.get("key"), values=tuple(values))

    except ValidationError as e:
        error = e.errors()[0]
        raise InvalidInput(f"Invalid '{operator}' filter: {error['msg']}") from e

    raise InvalidInput(f"Unsupported filter operator: {operator}")


# ============================================================================
# Request / Response Value Objects
# ============================================================================


class RetrievalMode(str, Enum):
    """Which knowledge base API a request is sent to."""

    RETRIEVE = "retrieve"
    RETRIEVE_AND_GENERATE = "retrieve_and_generate"


class RetrievalRequest(BaseModel):
    """
    A tenant-scoped retrieval request, ready for the knowledge base client.

    Attributes:
        tenant_id: Authenticated tenant the request is scoped to
        query_text: Natural language query
        result_count: Number of chunks to retrieve
        filter: Metadata filter, always including the tenant predicate
        mode: Retrieval only, or retrieval plus generation
    """

    tenant_id: str = Field(..., min_length=1)
    query_text: str = Field(..., min_length=1)
    result_count: int = Field(..., ge=1)
    filter: FilterNode
    mode: RetrievalMode = RetrievalMode.RETRIEVE

    class Config:
        """Pydantic configuration."""

        frozen = True


class RetrievedChunk(BaseModel):
    """
    A unit of retrieved text.

    Attributes:
        source_id: URI or identifier of the source document
        text: Chunk text
        score: Relevance score (retrieve responses only)
        metadata: Scalar metadata attributes of the source document
    """

    source_id: str
    text: str
    score: Optional[float] = None
    metadata: Dict[str, Scalar] = Field(default_factory=dict)

    class Config:
        """Pydantic configuration."""

        frozen = True


class NormalizedResponse(BaseModel):
    """
    Backend-independent view of a knowledge base response.

    Attributes:
        generated_text: Generated answer; None when the backend only retrieved
        chunks: Retrieved chunks in backend (relevance) order
        session_id: Generation session, when the backend returned one
    """

    generated_text: Optional[str] = None
    chunks: List[RetrievedChunk] = Field(default_factory=list)
    session_id: Optional[str] = None

    class Config:
        """Pydantic configuration."""

        frozen = True
