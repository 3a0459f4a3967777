"""
Centralized configuration management using pydantic-settings.
All services should import Settings from this module.
"""

from typing import Optional
from enum import Enum
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Environment types."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


class StoreBackend(str, Enum):
    """Loan store backends."""
    MEMORY = "memory"
    REDIS = "redis"


class NotificationBackend(str, Enum):
    """Notification sink backends."""
    LOG = "log"
    KAFKA = "kafka"
    WEBHOOK = "webhook"


class ApiSettings(BaseSettings):
    """HTTP listener settings."""
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=8080, description="Bind port")

    model_config = SettingsConfigDict(env_prefix="API_")


class StoreSettings(BaseSettings):
    """Loan store settings."""
    backend: StoreBackend = Field(default=StoreBackend.MEMORY, description="Store backend")
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis connection URL")
    loans_key: str = Field(default="lendlock:loans", description="Redis hash holding loan records")

    model_config = SettingsConfigDict(env_prefix="STORE_")


class KafkaSettings(BaseSettings):
    """Kafka-specific settings."""
    bootstrap_servers: str = Field(default="localhost:9092", description="Kafka bootstrap servers")
    producer_timeout_ms: int = Field(default=10000, description="Producer timeout in milliseconds")
    client_id: str = Field(default="lendlock-loan-engine", description="Producer client id")

    model_config = SettingsConfigDict(env_prefix="KAFKA_")


class NotificationSettings(BaseSettings):
    """Outbound notification settings."""
    backend: NotificationBackend = Field(default=NotificationBackend.LOG, description="Sink backend")

    # Channel names
    channel_generate_agreement_letter: str = Field(
        default="generate_agreement_letter",
        description="Channel requesting agreement letter generation"
    )
    channel_email_agreement_letter: str = Field(
        default="email_agreement_letter",
        description="Channel requesting the agreement letter be emailed to an investor"
    )

    # Webhook sink
    webhook_url: str = Field(default="http://localhost:8081/notifications", description="Webhook base URL")
    webhook_timeout: float = Field(default=5.0, description="Webhook request timeout in seconds")

    model_config = SettingsConfigDict(env_prefix="NOTIFICATIONS_")


class LoanSettings(BaseSettings):
    """Loan engine settings."""
    agreement_letter_url_template: str = Field(
        default="https://example.com/agreement_letters/{loan_id}.pdf",
        description="Template for the agreement letter URL of a fully funded loan"
    )

    model_config = SettingsConfigDict(env_prefix="LOANS_")


class MonitoringSettings(BaseSettings):
    """Monitoring and observability settings."""
    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="json", description="Log format (json or text)")
    log_file: Optional[str] = Field(default=None, description="Log file path")

    model_config = SettingsConfigDict(env_prefix="MONITORING_")


class Settings(BaseSettings):
    """Main settings class combining all service settings."""
    # Environment
    environment: Environment = Field(default=Environment.DEVELOPMENT, description="Environment")
    service_name: str = Field(default="lendlock", description="Service name")

    # Sub-settings
    api: ApiSettings = Field(default_factory=ApiSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    kafka: KafkaSettings = Field(default_factory=KafkaSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    loans: LoanSettings = Field(default_factory=LoanSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore"
    )


# Global settings instance
settings = Settings()
