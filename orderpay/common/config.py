"""Central environment-driven settings for the payment service.

The service process loads this once at startup. Behavior is controlled by
environment variables (see `.env.example`).
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class CommonSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "payment-service"
    log_level: str = "INFO"
    kafka_bootstrap_servers: str = "kafka:9092"
    postgres_dsn: str
    api_key: str
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318/v1/traces"
    order_events_topic: str = "ORDER_EVENTS"
    order_events_group_id: str = "payment-service-group"
    payment_events_topic: str = "PAYMENT_EVENTS"
    payment_link_base_url: str = "https://payment-gateway.com/pay/"
    payment_link_ttl_seconds: int = 300
    expiry_sweep_interval_seconds: float = 60.0
    retry_max_attempts: int = 3
    retry_backoff_seconds: float = 1.0
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = CommonSettings()
