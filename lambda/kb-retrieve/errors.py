"""
Error taxonomy for tenant-scoped knowledge base retrieval.

All errors propagate to the immediate caller. The Lambda handler is the only
place that maps them to HTTP responses.
"""

from typing import Optional


class KnowledgeBaseError(Exception):
    """Base class for all kb-retrieve errors."""


class InvalidInput(KnowledgeBaseError):
    """Caller-supplied request parameters are malformed."""


class MalformedResponse(KnowledgeBaseError):
    """The knowledge base returned data that doesn't have the expected shape."""


class TransportError(KnowledgeBaseError):
    """
    The call to the knowledge base failed.

    Attributes:
        code: AWS error code when the failure came from the service (e.g. "AccessDeniedException")
    """

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code
