"""
Response normalizer for knowledge base responses.

Accepts raw Bedrock Retrieve and RetrieveAndGenerate responses and returns a
NormalizedResponse: the generated answer (if any) plus the retrieved chunks
in the order the backend ranked them.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from errors import MalformedResponse
from models import NormalizedResponse, RetrievedChunk

logger = logging.getLogger()

# Location types in the order they're checked, with the field that identifies the source
LOCATION_ID_FIELDS = [
    ("s3Location", "uri"),
    ("webLocation", "url"),
    ("confluenceLocation", "url"),
    ("salesforceLocation", "url"),
    ("sharePointLocation", "url"),
    ("customDocumentLocation", "id"),
]

SOURCE_URI_METADATA_KEY = "x-amz-bedrock-kb-source-uri"

SCALAR_TYPES = (bool, int, float, str)


def resolve_source_id(location: Any, metadata: Mapping[str, Any]) -> Optional[str]:
    """
    Pick a stable identifier for the document a chunk came from.

    Args:
        location: Bedrock RetrievalResultLocation (may be missing)
        metadata: Raw chunk metadata

    Returns:
        str: Source URI/ID, or None if neither location nor metadata identify it
    """
    if isinstance(location, dict):
        for location_key, id_field in LOCATION_ID_FIELDS:
            typed_location = location.get(location_key)
            if isinstance(typed_location, dict) and typed_location.get(id_field):
                return typed_location[id_field]

    source_uri = metadata.get(SOURCE_URI_METADATA_KEY)
    if isinstance(source_uri, str) and source_uri:
        return source_uri

    return None


def scalar_metadata(metadata: Mapping[str, Any]) -> Dict[str, Any]:
    """Drop metadata values that aren't scalars (lists, objects, nulls)."""
    return {key: value for key, value in metadata.items() if isinstance(value, SCALAR_TYPES)}


def normalize_chunk(entry: Any, position: int) -> RetrievedChunk:
    """
    Normalize one retrieval result or retrieved reference.

    Args:
        entry: Raw entry from retrievalResults or citations[].retrievedReferences
        position: Index of the entry, used in error messages

    Returns:
        RetrievedChunk: Normalized chunk

    Raises:
        MalformedResponse: If the entry lacks text or a source identifier
    """
    if not isinstance(entry, dict):
        raise MalformedResponse(f"Chunk {position} is not an object")

    content = entry.get("content")
    text = content.get("text") if isinstance(content, dict) else None
    if not isinstance(text, str) or not text:
        raise MalformedResponse(f"Chunk {position} is missing content.text")

    raw_metadata = entry.get("metadata") or {}
    if not isinstance(raw_metadata, dict):
        raise MalformedResponse(f"Chunk {position} has non-object metadata")

    source_id = resolve_source_id(entry.get("location"), raw_metadata)
    if source_id is None:
        raise MalformedResponse(f"Chunk {position} has no source location")

    score = entry.get("score")
    if score is not None and (isinstance(score, bool) or not isinstance(score, (int, float))):
        raise MalformedResponse(f"Chunk {position} has a non-numeric score")

    return RetrievedChunk(
        source_id=source_id,
        text=text,
        score=score,
        metadata=scalar_metadata(raw_metadata),
    )


def _retrieved_references(citations: List[Any]) -> List[Any]:
    # Flatten in citation order; a reference cited twice appears twice
    references = []
    for position, citation in enumerate(citations):
        if not isinstance(citation, dict):
            raise MalformedResponse(f"Citation {position} is not an object")
        cited = citation.get("retrievedReferences") or []
        if not isinstance(cited, list):
            raise MalformedResponse(f"Citation {position} has non-list retrievedReferences")
        references.extend(cited)
    return references


def normalize(raw_response: Any) -> NormalizedResponse:
    """
    Normalize a Retrieve or RetrieveAndGenerate response.

    Retrieve responses carry chunks in retrievalResults. RetrieveAndGenerate
    responses carry the answer in output.text and chunks in
    citations[].retrievedReferences. Backend ordering is preserved.

    Args:
        raw_response: Parsed JSON response from the knowledge base

    Returns:
        NormalizedResponse: Generated text (None for retrieval-only) and chunks

    Raises:
        MalformedResponse: If the chunk list is missing or an entry is invalid
    """
    if not isinstance(raw_response, dict):
        raise MalformedResponse("Response is not an object")

    generated_text = None
    if "retrievalResults" in raw_response:
        entries = raw_response["retrievalResults"]
        if not isinstance(entries, list):
            raise MalformedResponse("retrievalResults is not a list")

    elif "citations" in raw_response:
        citations = raw_response["citations"]
        if not isinstance(citations, list):
            raise MalformedResponse("citations is not a list")
        entries = _retrieved_references(citations)

        output = raw_response.get("output")
        if isinstance(output, dict) and isinstance(output.get("text"), str):
            generated_text = output["text"]

    else:
        raise MalformedResponse("Response has neither retrievalResults nor citations")

    chunks = [normalize_chunk(entry, position) for position, entry in enumerate(entries)]

    session_id = raw_response.get("sessionId")
    if not isinstance(session_id, str):
        session_id = None

    logger.info(
        f"[normalizer] Normalized {len(chunks)} chunks "
        f"(generated_text={'yes' if generated_text is not None else 'no'})"
    )

    return NormalizedResponse(
        generated_text=generated_text,
        chunks=chunks,
        session_id=session_id,
    )
