"""Configuration settings for the bookkeeping core."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlatSettings(BaseSettings):
    """Flat settings read from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database (PostgREST endpoint of the hosted Postgres)
    supabase_url: str = Field(
        default="http://localhost:54321", validation_alias="SUPABASE_URL"
    )
    supabase_service_role_key: SecretStr = Field(
        ..., validation_alias="SUPABASE_SERVICE_ROLE_KEY"
    )
    database_timeout: float = Field(default=30.0, validation_alias="DATABASE_TIMEOUT")
    database_max_retries: int = Field(default=3, validation_alias="DATABASE_MAX_RETRIES")

    # Application
    app_env: Literal["development", "test", "production"] = Field(
        default="development", validation_alias="APP_ENV"
    )
    error_language: Literal["ja", "en"] = Field(
        default="ja", validation_alias="ERROR_LANGUAGE"
    )
    # Attach exception text to error responses; never honoured in production
    debug_errors: bool = Field(default=False, validation_alias="DEBUG_ERRORS")

    # Account codes used by partner balances and the cash/bank books
    receivable_account_codes: list[str] = Field(
        default=["1140", "1210", "1211", "1212", "1213"],
        validation_alias="RECEIVABLE_ACCOUNT_CODES",
    )
    payable_account_codes: list[str] = Field(
        default=["2110", "2111", "2112", "2113"],
        validation_alias="PAYABLE_ACCOUNT_CODES",
    )
    cash_account_codes: list[str] = Field(
        default=["1110"], validation_alias="CASH_ACCOUNT_CODES"
    )
    bank_account_codes: list[str] = Field(
        default=["1130"], validation_alias="BANK_ACCOUNT_CODES"
    )

    # Fiscal year (Japanese default: April 1st)
    fiscal_year_start_month: int = Field(
        default=4, ge=1, le=12, validation_alias="FISCAL_YEAR_START_MONTH"
    )
    fiscal_year_start_day: int = Field(
        default=1, ge=1, le=31, validation_alias="FISCAL_YEAR_START_DAY"
    )

    # CSV import
    import_max_rows: int = Field(default=1000, validation_alias="IMPORT_MAX_ROWS")
    import_max_file_size: int = Field(
        default=10 * 1024 * 1024, validation_alias="IMPORT_MAX_FILE_SIZE"
    )

    # AI classification (optional)
    openai_api_key: SecretStr | None = Field(default=None, validation_alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-4o-mini", validation_alias="OPENAI_MODEL")
    ai_classification_enabled: bool = Field(
        default=False, validation_alias="AI_CLASSIFICATION_ENABLED"
    )

    # WebSocket
    ws_host: str = Field(default="0.0.0.0", validation_alias="WS_HOST")
    ws_port: int = Field(default=8765, validation_alias="WS_PORT")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def expose_error_details(self) -> bool:
        return self.debug_errors and not self.is_production


@lru_cache
def get_settings() -> FlatSettings:
    """Get cached settings instance."""
    return FlatSettings()
