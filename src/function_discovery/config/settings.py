# config/settings.py
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List
from enum import Enum
from dotenv import load_dotenv

from function_discovery.core.exceptions import ConfigurationException

# Load .env file explicitly
load_dotenv()


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class KubernetesSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="K8S_")

    kubeconfig_path: Optional[str] = Field(None, description="Path to kubeconfig file; in-cluster config when unset")
    context: Optional[str] = Field(None, description="Kubernetes context to use")
    namespace: str = Field("default", description="Namespace holding upstream resources")
    crd_group: str = Field("gloo.solo.io", description="API group of the upstream custom resource")
    crd_version: str = Field("v1", description="API version of the upstream custom resource")
    crd_plural: str = Field("upstreams", description="Plural name of the upstream custom resource")
    watch_timeout_seconds: int = Field(300, description="Server-side timeout of a single watch request")


class DiscoverySettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="DISCOVERY_")

    workers: int = Field(2, description="Number of reconciliation workers")
    max_retries: int = Field(5, description="Retries before a work item is abandoned")
    resync_seconds: int = Field(300, description="Interval for re-emitting every cached upstream")


class SwaggerSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SWAGGER_")

    enabled: bool = Field(True, description="Enable swagger discovery")
    uris: List[str] = Field(default_factory=list, description="Swagger URIs tried before the built-in ones")
    retries: int = Field(0, description="Additional attempts for one swagger discovery")
    timeout_seconds: float = Field(10.0, description="Timeout for one swagger probe request")


class AWSSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="AWS_")

    enabled: bool = Field(True, description="Enable AWS Lambda discovery")
    access_key_id: Optional[str] = Field(None, description="AWS access key id")
    secret_access_key: Optional[str] = Field(None, description="AWS secret access key")
    poll_period_seconds: float = Field(60.0, description="Lambda poll period")
    timeout_seconds: float = Field(30.0, description="Connect and read timeout for Lambda API calls")


class GCFSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="GCF_")

    enabled: bool = Field(True, description="Enable Google Cloud Functions discovery")
    timeout_seconds: float = Field(30.0, description="Timeout for Cloud Functions API calls")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    log_level: LogLevel = Field(LogLevel.INFO, description="Log level")
    log_format: str = Field("json", description="Log format (json or text)")

    kubernetes: KubernetesSettings = Field(default_factory=lambda: KubernetesSettings())
    discovery: DiscoverySettings = Field(default_factory=lambda: DiscoverySettings())
    swagger: SwaggerSettings = Field(default_factory=lambda: SwaggerSettings())
    aws: AWSSettings = Field(default_factory=lambda: AWSSettings())
    gcf: GCFSettings = Field(default_factory=lambda: GCFSettings())

    @field_validator('log_level', mode='before')
    @classmethod
    def validate_log_level(cls, v):
        if isinstance(v, str):
            return LogLevel(v.upper())
        return v

    @classmethod
    def create_from_env(cls) -> "Settings":
        """Create settings instance from environment variables."""
        try:
            return cls()
        except ValidationError as e:
            raise ConfigurationException(f"Invalid configuration: {e}") from e
