"""
Request builder for tenant-scoped retrieval.

Turns an authenticated tenant ID and a user query into a RetrievalRequest
whose filter always restricts results to that tenant's documents. Pure: no
I/O, no shared state.
"""

import logging
from typing import Optional, Union

from config import Settings
from errors import InvalidInput
from models import (
    AndFilter,
    EqualsFilter,
    FilterNode,
    RetrievalMode,
    RetrievalRequest,
    parse_filter,
)

logger = logging.getLogger()

DEFAULT_SETTINGS = Settings()


def clamp_result_count(result_count: Optional[int], settings: Settings) -> int:
    """
    Clamp a requested result count into the configured range.

    Missing, zero and negative counts fall back to the default; counts above
    the maximum are reduced to the maximum.
    """
    if result_count is None or result_count <= 0:
        return settings.default_result_count
    return min(result_count, settings.max_result_count)


def tenant_filter(tenant_key: str, tenant_id: str) -> EqualsFilter:
    return EqualsFilter(key=tenant_key, value=tenant_id)


def scope_to_tenant(
    tenant_key: str,
    tenant_id: str,
    extra_filter: Optional[FilterNode] = None,
) -> FilterNode:
    """
    Conjoin the mandatory tenant predicate with a caller-supplied filter.

    A top-level AND in the extra filter is flattened into the result so the
    tenant predicate and the caller's predicates share one group.

    Args:
        tenant_key: Metadata key holding the tenant ID
        tenant_id: Authenticated tenant
        extra_filter: Optional caller-supplied filter

    Returns:
        FilterNode: Tenant predicate alone, or AND of tenant predicate and extra filter

    Raises:
        InvalidInput: If the extra filter references the tenant key
    """
    tenant_predicate = tenant_filter(tenant_key, tenant_id)
    if extra_filter is None:
        return tenant_predicate

    if tenant_key in extra_filter.keys():
        raise InvalidInput(f"Filter must not reference the tenant key '{tenant_key}'")

    if isinstance(extra_filter, AndFilter):
        members = extra_filter.filters
    else:
        members = (extra_filter,)

    return AndFilter(filters=(tenant_predicate,) + tuple(members))


def build(
    tenant_id: str,
    query_text: str,
    result_count: Optional[int] = None,
    extra_filter: Union[FilterNode, dict, None] = None,
    mode: Union[RetrievalMode, str] = RetrievalMode.RETRIEVE,
    settings: Optional[Settings] = None,
) -> RetrievalRequest:
    """
    Build a tenant-scoped retrieval request.

    Args:
        tenant_id: Tenant ID, already authenticated by the caller
        query_text: User query (surrounding whitespace is stripped)
        result_count: Requested number of results (clamped, never rejected)
        extra_filter: Optional filter node or filter in Bedrock JSON shape
        mode: "retrieve" or "retrieve_and_generate"
        settings: Settings to apply (defaults when omitted)

    Returns:
        RetrievalRequest: Request scoped to the tenant

    Raises:
        InvalidInput: If tenant_id or query_text is blank, the query is too long,
            the filter is malformed or references the tenant key, or the mode is unknown
    """
    settings = settings or DEFAULT_SETTINGS

    if not isinstance(tenant_id, str) or not tenant_id.strip():
        raise InvalidInput("tenant_id must be a non-empty string")

    if not isinstance(query_text, str) or not query_text.strip():
        raise InvalidInput("query_text must be a non-empty string")

    query_text = query_text.strip()
    if len(query_text) > settings.max_query_length:
        raise InvalidInput(
            f"query_text exceeds {settings.max_query_length} characters ({len(query_text)})"
        )

    try:
        mode = RetrievalMode(mode)
    except ValueError:
        raise InvalidInput(f"Unsupported retrieval mode: {mode}")

    parsed_filter: Optional[FilterNode] = None
    if extra_filter is not None:
        parsed_filter = parse_filter(extra_filter)

    request = RetrievalRequest(
        tenant_id=tenant_id,
        query_text=query_text,
        result_count=clamp_result_count(result_count, settings),
        filter=scope_to_tenant(settings.tenant_key, tenant_id, parsed_filter),
        mode=mode,
    )

    logger.info(
        f"[builder] Built {request.mode.value} request for tenant {tenant_id}: "
        f"result_count={request.result_count}, "
        f"filter_keys={sorted(request.filter.keys())}"
    )
    return request
