"""Configuration management for the ProConnect relying party."""

import json
import logging
from functools import lru_cache
from typing import Annotated

import boto3
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger(__name__)


def get_aws_secret(secret_name: str, key: str, region_name: str) -> str:
    """Fetch a single value from a JSON secret in AWS Secrets Manager."""
    session = boto3.session.Session()
    client = session.client(service_name="secretsmanager", region_name=region_name)
    response = client.get_secret_value(SecretId=secret_name)
    secrets = json.loads(response["SecretString"])
    return secrets[key]


def _split_csv(v: str | list[str] | None) -> list[str]:
    if v is None:
        return []
    if isinstance(v, str):
        return [item.strip() for item in v.split(",") if item.strip()]
    return v


class Settings(BaseSettings):
    """Relying party settings loaded from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
    )

    # Application
    host: str = Field(default="http://localhost:3000", description="Public base URL of this app")
    callback_path: str = Field(default="/login-callback")
    site_title: str = Field(default="ProConnect test client")

    # Identity provider
    issuer: str = Field(..., description="Issuer URL of the identity provider")
    client_id: str = Field(..., description="Client ID registered at the provider")
    client_secret: str = Field(default="", description="Client secret (client_secret_post)")
    scopes: str = Field(default="openid email profile")
    login_hint: str | None = Field(default=None)
    acr_values: Annotated[list[str], NoDecode] = Field(default_factory=list)
    id_token_signed_response_alg: str = Field(default="RS256")
    userinfo_signed_response_alg: str | None = Field(default=None)
    extra_param_sp_name: str | None = Field(default=None)
    use_pkce: bool = Field(default=False)
    fetch_userinfo: bool = Field(default=True)

    # Transport
    allow_insecure_requests: bool = Field(
        default=False,
        description="Allow plain http:// calls to the provider (local development only)",
    )
    http_timeout_s: float = Field(default=10.0)
    metadata_cache_ttl_s: int = Field(default=3600)
    clock_leeway_s: int = Field(default=0)

    # Step-up policies
    acr_value_for_self_asserted_2fa: str = Field(
        default="https://proconnect.gouv.fr/assurance/self-asserted-2fa"
    )
    acr_value_for_consistency_checked_2fa: str = Field(
        default="https://proconnect.gouv.fr/assurance/consistency-checked-2fa"
    )
    acr_value_for_certification_dirigeant: str = Field(
        default="https://proconnect.gouv.fr/assurance/certification-dirigeant"
    )
    step_up_acr_values: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Per-policy override of accepted ACR values",
    )
    mfa_amr_values: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["mfa", "otp", "totp", "hwk", "swk", "pop", "sms", "fido"]
    )

    # Session Configuration
    session_cookie_name: str = Field(default="pc_session")
    session_expire_minutes: int = Field(default=60)
    redis_url: str | None = Field(default=None)

    # Server Configuration
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=3000)
    server_env: str = Field(default="development")
    log_level: str = Field(default="INFO")

    # Optional AWS Secrets Manager source for the client secret
    aws_secret_name: str | None = Field(default=None)
    aws_region: str = Field(default="eu-west-3")
    aws_client_secret_key: str = Field(default="client_secret")

    @field_validator("acr_values", "mfa_amr_values", mode="before")
    @classmethod
    def parse_csv(cls, v: str | list[str] | None) -> list[str]:
        return _split_csv(v)

    @field_validator("host")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def redirect_uri(self) -> str:
        return f"{self.host}{self.callback_path}"

    @property
    def post_logout_redirect_uri(self) -> str:
        return f"{self.host}/"

    @property
    def discovery_url(self) -> str:
        return f"{self.issuer.rstrip('/')}/.well-known/openid-configuration"

    @property
    def is_production(self) -> bool:
        return self.server_env.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()

    if not settings.client_secret and settings.aws_secret_name:
        logger.info(f"Loading client secret from AWS secret {settings.aws_secret_name}")
        secret = get_aws_secret(
            settings.aws_secret_name,
            settings.aws_client_secret_key,
            settings.aws_region,
        )
        settings = settings.model_copy(update={"client_secret": secret})

    if settings.allow_insecure_requests and settings.is_production:
        logger.warning("Plain HTTP calls to the identity provider are allowed in production")

    return settings
