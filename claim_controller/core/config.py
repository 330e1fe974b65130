"""Application configuration using Pydantic Settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Controller settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # API Configuration
    api_base_path: str = "/v1"
    admission_enabled: bool = True

    # DynamoDB Configuration
    ddb_table_name: str = "SandboxClaims"
    ddb_kind_index_name: str = "KindIndex"
    ddb_claim_index_name: str = "ClaimIndex"
    ddb_pool_index_name: str = "PoolIndex"
    ddb_endpoint_url: str | None = None  # For local DynamoDB
    aws_region: str = "us-east-1"
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None

    # Claim Reconciliation
    claiming_requeue_delay_sec: float = 2.0
    resync_interval_sec: int = 30
    max_concurrent_reconciles: int = 4
    requeue_backoff_base_ms: int = 100
    requeue_backoff_max_ms: int = 30000

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    @property
    def requeue_backoff_max_seconds(self) -> float:
        """Get the error requeue backoff ceiling in seconds."""
        return self.requeue_backoff_max_ms / 1000.0


# Global settings instance
settings = Settings()
