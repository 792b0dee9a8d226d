from pydantic import Field
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    app_name: str = Field("invoice-robot", alias="APP_NAME")
    app_env: str = Field("dev", alias="APP_ENV")

    # Logging
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Storage
    database_path: str = Field("invoice_robot.db", alias="DATABASE_PATH")

    # Azure Document Intelligence (OCR)
    az_di_endpoint: str | None = Field(default=None, alias="AZ_DI_ENDPOINT")
    az_di_api_key: str | None = Field(default=None, alias="AZ_DI_API_KEY")
    az_di_model: str = Field("prebuilt-read", alias="AZ_DI_MODEL")

    # Azure OpenAI (project matching fallback)
    azure_openai_endpoint: str | None = Field(default=None, alias="AZURE_OPENAI_ENDPOINT")
    azure_openai_api_key: str | None = Field(default=None, alias="AZURE_OPENAI_API_KEY")
    azure_openai_deployment: str | None = Field(default=None, alias="AZURE_OPENAI_DEPLOYMENT")
    azure_openai_api_version: str = Field("2024-06-01", alias="AZURE_OPENAI_API_VERSION")

    # Accounting system REST gateway (Netvisor / Procountor)
    accounting_api_base_url: str | None = Field(default=None, alias="ACCOUNTING_API_BASE_URL")
    accounting_api_key: str | None = Field(default=None, alias="ACCOUNTING_API_KEY")
    accounting_timeout_seconds: float = Field(30.0, alias="ACCOUNTING_TIMEOUT_SECONDS")

    # Teams
    teams_webhook_url: str | None = Field(default=None, alias="TEAMS_WEBHOOK_URL")

    # API Base URL (for approval links in Teams cards)
    api_base_url: str = Field("http://127.0.0.1:8000", alias="API_BASE_URL")

    # CORS allowed origins (comma-separated list for production deployment)
    cors_origins: str = Field("http://localhost:3000,http://127.0.0.1:3000", alias="CORS_ORIGINS")

    # Service Bus (invoice events)
    service_bus_connection_string: str | None = Field(default=None, alias="SERVICE_BUS_CONNECTION_STRING")
    service_bus_queue: str = Field("invoice-events", alias="SERVICE_BUS_QUEUE")

    # Matching & approval policy
    auto_match_threshold: float = Field(0.9, alias="AUTO_MATCH_THRESHOLD")
    fetch_days: int = Field(30, alias="FETCH_DAYS")
    approval_expiry_days: int = Field(14, alias="APPROVAL_EXPIRY_DAYS")
    approval_claim_timeout_seconds: int = Field(300, alias="APPROVAL_CLAIM_TIMEOUT_SECONDS")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "populate_by_name": True}

settings = Settings()
