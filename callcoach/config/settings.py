from typing import Optional
from urllib.parse import quote_plus

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

MEMORY_DATABASE_URL = "memory://"


class DatabaseConfig(BaseSettings):
    """Database configuration"""

    url_override: Optional[str] = Field(default=None, validation_alias="DB_URL")
    host: str = "localhost"
    port: int = 5432
    username: str = "postgres"
    password: SecretStr = Field(default=SecretStr("postgres"))
    database: str = "callcoach"
    serverless: bool = Field(
        default=True,
        description="If true, disable connection pooling so serverless DBs can pause.",
    )

    @property
    def url(self) -> str:
        """Get database URL"""
        if self.url_override:
            return self.url_override
        username = quote_plus(self.username)
        password = quote_plus(self.password.get_secret_value())
        return (
            "postgresql+asyncpg://"
            f"{username}:{password}"
            f"@{self.host}:{self.port}/{self.database}"
        )

    @property
    def in_memory(self) -> bool:
        return self.url == MEMORY_DATABASE_URL

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        secrets_dir=".secrets",
        case_sensitive=False,
        extra="ignore",
    )


class StorageConfig(BaseSettings):
    """Audio storage configuration (local filesystem or S3)."""

    backend: str = "local"
    local_dir: str = "uploads/calls"
    bucket_name: str = "callcoach-recordings"
    region: str = "us-east-1"
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    max_upload_bytes: int = Field(default=50 * 1024 * 1024, ge=1)
    allowed_content_types: list[str] = [
        "audio/wav",
        "audio/x-wav",
        "audio/mpeg",
        "audio/mp3",
        "audio/m4a",
        "audio/x-m4a",
        "audio/mp4",
    ]

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class HuggingFaceConfig(BaseSettings):
    """Hosted inference API configuration."""

    api_key: SecretStr | None = Field(
        default=None,
        validation_alias="HUGGINGFACE_API_KEY",
    )
    base_url: str = "https://api-inference.huggingface.co"
    whisper_model: str = "openai/whisper-large-v3"
    analysis_models: list[str] = [
        "mistralai/Mistral-7B-Instruct-v0.1",
        "google/flan-t5-large",
        "facebook/blenderbot-400M-distill",
    ]
    coaching_models: list[str] = [
        "mistralai/Mistral-7B-Instruct-v0.1",
        "google/flan-t5-large",
        "mistralai/mistral-small",
    ]
    timeout_seconds: float = Field(default=120.0, gt=0)
    max_retries: int = Field(default=4, ge=0)
    transcription_max_retries: int = Field(default=5, ge=0)
    backoff_base_ms: int = Field(default=2000, ge=0)
    transient_pause_ms: int = Field(default=1000, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="HUGGINGFACE_",
        env_file=".env",
        secrets_dir=".secrets",
        case_sensitive=False,
        extra="ignore",
    )


class OllamaConfig(BaseSettings):
    """Local Ollama configuration."""

    url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("OLLAMA_URL", "OLLAMA_HOST"),
    )
    model: str = Field(default="llama2", validation_alias="OLLAMA_MODEL")
    timeout_seconds: float = Field(
        default=120.0,
        validation_alias="OLLAMA_TIMEOUT_SECONDS",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class NotificationConfig(BaseSettings):
    """Pipeline event fan-out configuration."""

    backend: str = "memory"
    history_size: int = Field(default=50, ge=0)
    history_topics: int = Field(default=1000, ge=1)
    rabbitmq_host: str = "localhost"
    rabbitmq_port: int = 5672
    rabbitmq_username: str = "guest"
    rabbitmq_password: SecretStr = Field(default=SecretStr("guest"))
    exchange: str = "callcoach.events"

    model_config = SettingsConfigDict(
        env_prefix="NOTIFY_",
        env_file=".env",
        secrets_dir=".secrets",
        case_sensitive=False,
        extra="ignore",
    )


class SecurityConfig(BaseSettings):
    """JWT and application security configuration."""

    jwt_secret_key: SecretStr = Field(
        default=SecretStr("change-me"),
        validation_alias="JWT_SECRET",
    )
    jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
    access_token_expires_minutes: int = Field(
        default=60,
        validation_alias="JWT_EXPIRATION_MINUTES",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class Settings(BaseSettings):
    """Application settings"""

    app_name: str = "CallCoach Backend"
    app_version: str = "1.0.0"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    log_file: str = "logs/app.log"
    pipeline_log_file: str = "logs/pipeline.log"

    # Database
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)

    # Audio storage
    storage: StorageConfig = Field(default_factory=StorageConfig)

    # AI providers
    huggingface: HuggingFaceConfig = Field(default_factory=HuggingFaceConfig)
    ollama: OllamaConfig = Field(default_factory=OllamaConfig)

    # Notifications
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)

    # Security
    security: SecurityConfig = Field(default_factory=SecurityConfig)

    # CORS
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance
settings = Settings()
