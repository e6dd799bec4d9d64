"""
Configuration for the kb-retrieve Lambda.

Settings come from environment variables, with the knowledge base ID and
model ARN falling back to SSM Parameter Store. Settings are loaded once per
container.
"""

import logging
import os
from functools import lru_cache
from typing import Optional

import boto3
from botocore.exceptions import ClientError
from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger()

# Bedrock caps numberOfResults at 100
VENDOR_MAX_RESULT_COUNT = 100

# Environment variable -> Settings field
_ENV_FIELDS = {
    "TENANT_KEY": "tenant_key",
    "DEFAULT_RESULT_COUNT": "default_result_count",
    "MAX_RESULT_COUNT": "max_result_count",
    "MAX_QUERY_LENGTH": "max_query_length",
}


class Settings(BaseModel):
    """
    Runtime settings.

    Attributes:
        knowledge_base_id: Bedrock knowledge base to query (required by the client only)
        model_arn: Foundation model used for retrieve-and-generate requests
        tenant_key: Metadata key that holds the tenant identifier on every document
        default_result_count: Results returned when the caller doesn't ask for a valid count
        max_result_count: Upper bound on results per request
        max_query_length: Longest query text accepted
    """

    knowledge_base_id: Optional[str] = None
    model_arn: Optional[str] = None
    tenant_key: str = Field(default="tenant_id", min_length=1)
    default_result_count: int = Field(default=5, ge=1)
    max_result_count: int = Field(default=25, ge=1, le=VENDOR_MAX_RESULT_COUNT)
    max_query_length: int = Field(default=1000, ge=1)

    class Config:
        """Pydantic configuration."""

        frozen = True

    @model_validator(mode="after")
    def check_default_within_max(self) -> "Settings":
        if self.default_result_count > self.max_result_count:
            raise ValueError(
                f"default_result_count ({self.default_result_count}) exceeds "
                f"max_result_count ({self.max_result_count})"
            )
        return self


def get_ssm_parameter(name: str, required: bool = True) -> Optional[str]:
    """
    Read a parameter from SSM Parameter Store.

    Args:
        name: Parameter name (e.g. "/dev/kb-retrieve/bedrock/knowledge-base-id")
        required: Raise when the parameter doesn't exist instead of returning None

    Returns:
        str: Parameter value, or None for a missing optional parameter

    Raises:
        ClientError: If the parameter can't be read
    """
    ssm = boto3.client("ssm")

    try:
        response = ssm.get_parameter(Name=name)
    except ClientError as e:
        error_code = e.response.get("Error", {}).get("Code", "")
        if error_code == "ParameterNotFound" and not required:
            logger.info(f"[config] Optional parameter not set: {name}")
            return None
        logger.error(f"[config] Failed to load SSM parameter {name}: {e}")
        raise

    value = response.get("Parameter", {}).get("Value")
    logger.info(f"[config] Loaded SSM parameter: {name}")
    return value


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """
    Load settings from the environment and SSM Parameter Store.

    KNOWLEDGE_BASE_ID and MODEL_ARN take precedence over their SSM
    parameters under /{ENV}/{APP_NAME}/bedrock/.

    Returns:
        Settings: Validated settings

    Raises:
        ValidationError: If a setting is out of range
        ClientError: If the knowledge base ID can't be read from SSM
    """
    env = os.environ.get("ENV", "dev")
    app_name = os.environ.get("APP_NAME", "kb-retrieve")
    param_prefix = f"/{env}/{app_name}/bedrock"

    values = {
        field: os.environ[var] for var, field in _ENV_FIELDS.items() if os.environ.get(var)
    }

    values["knowledge_base_id"] = os.environ.get("KNOWLEDGE_BASE_ID") or get_ssm_parameter(
        f"{param_prefix}/knowledge-base-id"
    )
    values["model_arn"] = os.environ.get("MODEL_ARN") or get_ssm_parameter(
        f"{param_prefix}/model-arn", required=False
    )

    settings = Settings(**values)
    logger.info(
        f"[config] Settings loaded: knowledge_base_id={settings.knowledge_base_id}, "
        f"tenant_key={settings.tenant_key}, "
        f"result_count={settings.default_result_count}/{settings.max_result_count}"
    )
    return settings


def reset_settings_cache() -> None:
    """Forget cached settings (tests, or after rotating parameters)."""
    load_settings.cache_clear()
