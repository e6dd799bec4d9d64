"""
Bedrock Knowledge Bases client.

Serializes a RetrievalRequest to the bedrock-agent-runtime wire format,
calls Retrieve or RetrieveAndGenerate, and returns the raw response.
Throttling is retried here; every other failure is raised as TransportError.
"""

import logging
import time
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from errors import InvalidInput, TransportError
from models import RetrievalMode, RetrievalRequest

logger = logging.getLogger()

MAX_RETRIES = 3

# Error codes worth retrying with backoff
RETRYABLE_ERROR_CODES = {"ThrottlingException", "ServiceUnavailableException"}


# ============================================================================
# Wire Format
# ============================================================================


def retrieval_configuration(request: RetrievalRequest) -> Dict[str, Any]:
    """Build the vectorSearchConfiguration block shared by both APIs."""
    return {
        "vectorSearchConfiguration": {
            "numberOfResults": request.result_count,
            "filter": request.filter.to_wire(),
        }
    }


def to_retrieve_params(request: RetrievalRequest, knowledge_base_id: str) -> Dict[str, Any]:
    """
    Serialize a request for the Retrieve API.

    Args:
        request: Tenant-scoped retrieval request
        knowledge_base_id: Knowledge base to query

    Returns:
        dict: Keyword arguments for bedrock-agent-runtime retrieve()
    """
    return {
        "knowledgeBaseId": knowledge_base_id,
        "retrievalQuery": {"text": request.query_text},
        "retrievalConfiguration": retrieval_configuration(request),
    }


def to_retrieve_and_generate_params(
    request: RetrievalRequest,
    knowledge_base_id: str,
    model_arn: str,
) -> Dict[str, Any]:
    """
    Serialize a request for the RetrieveAndGenerate API.

    Args:
        request: Tenant-scoped retrieval request
        knowledge_base_id: Knowledge base to query
        model_arn: Foundation model that generates the answer

    Returns:
        dict: Keyword arguments for bedrock-agent-runtime retrieve_and_generate()
    """
    return {
        "input": {"text": request.query_text},
        "retrieveAndGenerateConfiguration": {
            "type": "KNOWLEDGE_BASE",
            "knowledgeBaseConfiguration": {
                "knowledgeBaseId": knowledge_base_id,
                "modelArn": model_arn,
                "retrievalConfiguration": retrieval_configuration(request),
            },
        },
    }


# ============================================================================
# Client
# ============================================================================


class KnowledgeBaseClient:
    """
    Sends tenant-scoped requests to one Bedrock knowledge base.

    Create once per container and reuse across invocations.
    """

    def __init__(
        self,
        knowledge_base_id: str,
        model_arn: Optional[str] = None,
        client: Any = None,
        max_retries: int = MAX_RETRIES,
    ):
        """
        Initialize the client.

        Args:
            knowledge_base_id: Knowledge base to query
            model_arn: Model for retrieve-and-generate (retrieve-only when None)
            client: bedrock-agent-runtime client (created when omitted)
            max_retries: Attempts per call for throttled requests
        """
        self.knowledge_base_id = knowledge_base_id
        self.model_arn = model_arn
        self.client = client or boto3.client("bedrock-agent-runtime")
        self.max_retries = max_retries

    def execute(self, request: RetrievalRequest) -> Dict[str, Any]:
        """
        Send a request to the API matching its mode.

        Args:
            request: Tenant-scoped retrieval request

        Returns:
            dict: Raw response from Bedrock

        Raises:
            InvalidInput: If generation is requested without a configured model
            TransportError: If the call fails or stays throttled after retries
        """
        if request.mode == RetrievalMode.RETRIEVE_AND_GENERATE:
            if not self.model_arn:
                raise InvalidInput("Answer generation is not configured (no model ARN)")
            params = to_retrieve_and_generate_params(request, self.knowledge_base_id, self.model_arn)
            return self._call("retrieve_and_generate", params, request.tenant_id)

        params = to_retrieve_params(request, self.knowledge_base_id)
        return self._call("retrieve", params, request.tenant_id)

    def _call(self, operation: str, params: Dict[str, Any], tenant_id: str) -> Dict[str, Any]:
        last_error_code = None

        # Retry logic with exponential backoff
        for attempt in range(self.max_retries):
            try:
                logger.info(
                    f"[transport] Calling {operation} on {self.knowledge_base_id} "
                    f"for tenant {tenant_id} (attempt {attempt + 1}/{self.max_retries})"
                )
                response = getattr(self.client, operation)(**params)
                response.pop("ResponseMetadata", None)
                return response

            except ClientError as e:
                error_code = e.response.get("Error", {}).get("Code", "")

                if error_code not in RETRYABLE_ERROR_CODES:
                    logger.error(f"[transport] Bedrock {operation} failed: {e}")
                    raise TransportError(f"Bedrock {operation} failed: {error_code}", code=error_code) from e

                last_error_code = error_code
                if attempt + 1 < self.max_retries:
                    wait_time = 2 ** attempt  # Exponential backoff: 1s, 2s, 4s
                    logger.warning(
                        f"[transport] {error_code} from Bedrock, retrying in {wait_time}s "
                        f"(attempt {attempt + 1}/{self.max_retries})"
                    )
                    time.sleep(wait_time)

            except BotoCoreError as e:
                logger.error(f"[transport] Bedrock {operation} connection error: {e}")
                raise TransportError(f"Bedrock {operation} failed: {e}") from e

        logger.error(f"[transport] Bedrock {operation} still failing after {self.max_retries} attempts")
        raise TransportError(
            f"Bedrock {operation} failed after {self.max_retries} attempts: {last_error_code}",
            code=last_error_code,
        )
