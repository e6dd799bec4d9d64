"""
Unit tests for kb-retrieve configuration.

Tests cover:
- Settings defaults and validation
- Environment variable overrides
- SSM Parameter Store lookups (mocked with moto)
"""

import boto3
import pytest
from botocore.exceptions import ClientError
from moto import mock_aws
from pydantic import ValidationError

from config import Settings, load_settings, reset_settings_cache


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Start every test with no kb-retrieve settings in the environment."""
    for var in (
        "ENV",
        "APP_NAME",
        "KNOWLEDGE_BASE_ID",
        "MODEL_ARN",
        "TENANT_KEY",
        "DEFAULT_RESULT_COUNT",
        "MAX_RESULT_COUNT",
        "MAX_QUERY_LENGTH",
    ):
        monkeypatch.delenv(var, raising=False)
    reset_settings_cache()
    yield
    reset_settings_cache()


def put_parameter(name, value):
    ssm = boto3.client("ssm", region_name="us-west-2")
    ssm.put_parameter(Name=name, Value=value, Type="String")


class TestSettings:
    """Test Settings validation."""

    def test_defaults(self):
        settings = Settings()

        assert settings.tenant_key == "tenant_id"
        assert settings.default_result_count == 5
        assert settings.max_result_count == 25
        assert settings.max_query_length == 1000
        assert settings.knowledge_base_id is None

    def test_default_above_max_rejected(self):
        with pytest.raises(ValidationError):
            Settings(default_result_count=30, max_result_count=10)

    def test_max_above_vendor_cap_rejected(self):
        with pytest.raises(ValidationError):
            Settings(max_result_count=101)

    @pytest.mark.parametrize("field", ["default_result_count", "max_result_count", "max_query_length"])
    def test_non_positive_rejected(self, field):
        with pytest.raises(ValidationError):
            Settings(**{field: 0})

    def test_empty_tenant_key_rejected(self):
        with pytest.raises(ValidationError):
            Settings(tenant_key="")


class TestLoadSettings:
    """Test loading settings from the environment and SSM."""

    @mock_aws
    def test_loads_ids_from_ssm(self):
        # Arrange
        put_parameter("/dev/kb-retrieve/bedrock/knowledge-base-id", "KBFROMSSM")
        put_parameter("/dev/kb-retrieve/bedrock/model-arn", "arn:aws:bedrock:model")

        # Act
        settings = load_settings()

        # Assert
        assert settings.knowledge_base_id == "KBFROMSSM"
        assert settings.model_arn == "arn:aws:bedrock:model"

    @mock_aws
    def test_model_arn_optional(self):
        # Arrange
        put_parameter("/dev/kb-retrieve/bedrock/knowledge-base-id", "KBFROMSSM")

        # Act
        settings = load_settings()

        # Assert
        assert settings.model_arn is None

    @mock_aws
    def test_missing_knowledge_base_id_raises(self):
        with pytest.raises(ClientError):
            load_settings()

    @mock_aws
    def test_parameter_path_uses_env_and_app_name(self, monkeypatch):
        # Arrange
        monkeypatch.setenv("ENV", "prd")
        monkeypatch.setenv("APP_NAME", "support-bot")
        put_parameter("/prd/support-bot/bedrock/knowledge-base-id", "KBPRD")

        # Act
        settings = load_settings()

        # Assert
        assert settings.knowledge_base_id == "KBPRD"

    @mock_aws
    def test_environment_overrides(self, monkeypatch):
        # Arrange
        monkeypatch.setenv("KNOWLEDGE_BASE_ID", "KBFROMENV")
        monkeypatch.setenv("MODEL_ARN", "arn:aws:bedrock:env-model")
        monkeypatch.setenv("TENANT_KEY", "org_id")
        monkeypatch.setenv("DEFAULT_RESULT_COUNT", "3")
        monkeypatch.setenv("MAX_RESULT_COUNT", "10")
        monkeypatch.setenv("MAX_QUERY_LENGTH", "500")

        # Act
        settings = load_settings()

        # Assert
        assert settings.knowledge_base_id == "KBFROMENV"
        assert settings.model_arn == "arn:aws:bedrock:env-model"
        assert settings.tenant_key == "org_id"
        assert settings.default_result_count == 3
        assert settings.max_result_count == 10
        assert settings.max_query_length == 500

    @mock_aws
    def test_invalid_environment_value_raises(self, monkeypatch):
        monkeypatch.setenv("KNOWLEDGE_BASE_ID", "KBFROMENV")
        monkeypatch.setenv("MODEL_ARN", "arn:aws:bedrock:env-model")
        monkeypatch.setenv("MAX_RESULT_COUNT", "lots")

        with pytest.raises(ValidationError):
            load_settings()

    @mock_aws
    def test_settings_cached_until_reset(self, monkeypatch):
        # Arrange
        monkeypatch.setenv("KNOWLEDGE_BASE_ID", "KB1")
        monkeypatch.setenv("MODEL_ARN", "arn:aws:bedrock:model")
        first = load_settings()
        monkeypatch.setenv("KNOWLEDGE_BASE_ID", "KB2")

        # Act
        cached = load_settings()
        reset_settings_cache()
        reloaded = load_settings()

        # Assert
        assert cached is first
        assert reloaded.knowledge_base_id == "KB2"
