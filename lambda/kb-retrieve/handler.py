"""
Lambda handler for tenant-scoped knowledge base queries.

This handler:
1. Reads the tenant ID from the API Gateway authorizer context
2. Validates the request body using Pydantic schemas
3. Builds a retrieval request scoped to the tenant
4. Calls Bedrock Retrieve or RetrieveAndGenerate
5. Returns the normalized answer and chunks
"""

import base64
import json
import logging
import os
from typing import Any, Dict, Optional

from pydantic import ValidationError

from config import load_settings
from errors import InvalidInput, MalformedResponse, TransportError
from kb_client import KnowledgeBaseClient
from models import RetrievalMode
from request_builder import build
from response_normalizer import normalize
from schemas import ErrorResponse, QueryKnowledgeBaseRequest, QueryKnowledgeBaseResponse

# Configure logging; unknown LOG_LEVEL names fall back to INFO
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
logger = logging.getLogger()
logger.setLevel(LOG_LEVEL if isinstance(logging.getLevelName(LOG_LEVEL), int) else logging.INFO)

# Claim carrying the tenant when the API uses a Cognito authorizer
TENANT_CLAIM = "custom:tenant_id"

# Knowledge base client, created on first use and reused per container
_kb_client: Optional[KnowledgeBaseClient] = None


def get_kb_client() -> KnowledgeBaseClient:
    global _kb_client
    if _kb_client is None:
        settings = load_settings()
        _kb_client = KnowledgeBaseClient(
            knowledge_base_id=settings.knowledge_base_id,
            model_arn=settings.model_arn,
        )
    return _kb_client


def get_tenant_id(event: Dict[str, Any]) -> Optional[str]:
    """
    Extract the authenticated tenant ID from the request context.

    Supports Lambda authorizers (context key "tenantId") and Cognito
    authorizers (claim "custom:tenant_id"). The request body is never
    consulted.

    Args:
        event: API Gateway proxy event

    Returns:
        str: Tenant ID, or None if the request carries no authenticated tenant
    """
    authorizer = (event.get("requestContext") or {}).get("authorizer") or {}

    tenant_id = authorizer.get("tenantId")
    if not tenant_id:
        tenant_id = (authorizer.get("claims") or {}).get(TENANT_CLAIM)

    if isinstance(tenant_id, str) and tenant_id.strip():
        return tenant_id
    return None


def parse_body(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Decode the JSON request body.

    Args:
        event: API Gateway proxy event

    Returns:
        dict: Parsed body (empty when there is none)

    Raises:
        InvalidInput: If the body isn't a JSON object
    """
    body = event.get("body")
    if body is None:
        return {}
    if isinstance(body, dict):
        return body

    try:
        if event.get("isBase64Encoded"):
            body = base64.b64decode(body).decode("utf-8")
        parsed = json.loads(body)
    except (ValueError, UnicodeDecodeError, RecursionError) as e:
        raise InvalidInput(f"Request body is not valid JSON: {e}")

    if not isinstance(parsed, dict):
        raise InvalidInput("Request body must be a JSON object")
    return parsed


def error_response(status_code: int, error: str, details: Optional[str] = None) -> Dict[str, Any]:
    return {
        "statusCode": status_code,
        "body": json.dumps(ErrorResponse(error=error, details=details).model_dump()),
    }


def process_event(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Process the Lambda event and return the knowledge base answer.

    Args:
        event: API Gateway proxy event

    Returns:
        API Gateway response object
    """
    tenant_id = get_tenant_id(event)
    if tenant_id is None:
        logger.warning("[kb-retrieve] Request has no authenticated tenant")
        return error_response(401, "Unauthorized", "No tenant in request context")

    try:
        body = QueryKnowledgeBaseRequest.model_validate(parse_body(event))
    except ValidationError as e:
        fields = [".".join(str(part) for part in error["loc"]) for error in e.errors()]
        logger.warning(f"[kb-retrieve] Validation error for tenant {tenant_id}: fields={fields}")
        return error_response(400, "Validation error", str(e))
    except InvalidInput as e:
        return error_response(400, "Validation error", str(e))

    logger.info(
        f"[kb-retrieve] Query from tenant {tenant_id}: "
        f"{len(body.query)} chars, topK={body.top_k}, generate={body.generate}"
    )

    mode = RetrievalMode.RETRIEVE_AND_GENERATE if body.generate else RetrievalMode.RETRIEVE

    try:
        settings = load_settings()
        request = build(
            tenant_id,
            body.query,
            result_count=body.top_k,
            extra_filter=body.filter,
            mode=mode,
            settings=settings,
        )
        raw_response = get_kb_client().execute(request)
        normalized = normalize(raw_response)

    except InvalidInput as e:
        logger.warning(f"[kb-retrieve] Invalid input from tenant {tenant_id}: {e}")
        return error_response(400, "Validation error", str(e))

    except MalformedResponse as e:
        logger.error(f"[kb-retrieve] Malformed knowledge base response: {e}")
        return error_response(502, "Bad gateway", "Knowledge base returned an unexpected response")

    except TransportError as e:
        logger.error(f"[kb-retrieve] Knowledge base call failed ({e.code}): {e}")
        return error_response(502, "Bad gateway", "Failed to query knowledge base")

    response = QueryKnowledgeBaseResponse.from_normalized(normalized)
    logger.info(f"[kb-retrieve] Returning {response.count} chunks to tenant {tenant_id}")

    return {
        "statusCode": 200,
        "body": json.dumps(response.to_body()),
    }


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler entry point.

    Args:
        event: Lambda event object
        context: Lambda context object

    Returns:
        API Gateway response object
    """
    try:
        return process_event(event)

    except Exception as e:
        logger.error(f"[kb-retrieve] Unexpected error: {str(e)}", exc_info=True)
        return error_response(500, "Internal server error", "Failed to process request")
