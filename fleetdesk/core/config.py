"""Application configuration and settings."""

from typing import List, Optional, Union

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Service Configuration
    service_name: str = Field(default="fleetdesk", env="SERVICE_NAME")
    service_version: str = Field(default="1.0.0", env="SERVICE_VERSION")
    port: int = Field(default=8000, env="PORT")
    host: str = Field(default="::", env="HOST")
    debug: bool = Field(default=False, env="DEBUG")
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    environment: str = Field(default="development", env="ENVIRONMENT")

    # Messaging Channel (WhatsApp Cloud API)
    whatsapp_verify_token: str = Field(default="", env="WHATSAPP_VERIFY_TOKEN")
    whatsapp_access_token: str = Field(default="", env="WHATSAPP_ACCESS_TOKEN")
    whatsapp_phone_number_id: str = Field(default="", env="WHATSAPP_PHONE_NUMBER_ID")
    whatsapp_api_version: str = Field(default="v18.0", env="WHATSAPP_API_VERSION")
    whatsapp_api_base_url: str = Field(default="https://graph.facebook.com", env="WHATSAPP_API_BASE_URL")
    whatsapp_timeout_seconds: int = Field(default=15, env="WHATSAPP_TIMEOUT_SECONDS")

    # OpenAI Configuration
    openai_api_key: str = Field(default="", env="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-4o-mini", env="OPENAI_MODEL")
    openai_temperature: float = Field(default=0.3, env="OPENAI_TEMPERATURE")
    openai_max_tokens: int = Field(default=800, env="OPENAI_MAX_TOKENS")
    openai_timeout: int = Field(default=30, env="OPENAI_TIMEOUT")
    transcription_model: str = Field(default="whisper-1", env="TRANSCRIPTION_MODEL")

    # Supabase Configuration (unset means in-memory store)
    supabase_url: Optional[str] = Field(default=None, env="SUPABASE_URL")
    supabase_key: Optional[str] = Field(default=None, env="SUPABASE_KEY")

    # Bank Verification (Paystack)
    paystack_secret_key: str = Field(default="", env="PAYSTACK_SECRET_KEY")
    paystack_base_url: str = Field(default="https://api.paystack.co", env="PAYSTACK_BASE_URL")
    bank_verification_timeout_seconds: int = Field(default=10, env="BANK_VERIFICATION_TIMEOUT_SECONDS")

    # Session Configuration
    reasoning_session_idle_minutes: int = Field(default=5, env="REASONING_SESSION_IDLE_MINUTES")
    registration_session_idle_minutes: int = Field(default=60, env="REGISTRATION_SESSION_IDLE_MINUTES")
    history_max_turns: int = Field(default=20, env="HISTORY_MAX_TURNS")
    history_keep_turns: int = Field(default=10, env="HISTORY_KEEP_TURNS")

    # Tool Orchestration
    tool_loop_max_iterations: int = Field(default=5, env="TOOL_LOOP_MAX_ITERATIONS")
    tool_history_window: int = Field(default=10, env="TOOL_HISTORY_WINDOW")

    # Proactive Notifications
    notifications_enabled: bool = Field(default=True, env="NOTIFICATIONS_ENABLED")
    notification_interval_seconds: int = Field(default=3600, env="NOTIFICATION_INTERVAL_SECONDS")
    notification_cooldown_hours: int = Field(default=6, env="NOTIFICATION_COOLDOWN_HOURS")
    fleet_utilization_alert_threshold: float = Field(default=50.0, env="FLEET_UTILIZATION_ALERT_THRESHOLD")

    # Circuit Breaker Configuration
    circuit_breaker_failure_threshold: int = Field(default=5, env="CIRCUIT_BREAKER_FAILURE_THRESHOLD")
    circuit_breaker_timeout_seconds: int = Field(default=60, env="CIRCUIT_BREAKER_TIMEOUT_SECONDS")

    # Business Rules Configuration
    trial_days: int = Field(default=10, env="TRIAL_DAYS")
    default_vat_rate: float = Field(default=7.5, env="DEFAULT_VAT_RATE")
    invoice_due_days: int = Field(default=30, env="INVOICE_DUE_DAYS")
    default_currency: str = Field(default="NGN", env="DEFAULT_CURRENCY")
    country_calling_code: str = Field(default="234", env="COUNTRY_CALLING_CODE")
    terms_url: str = Field(default="https://fleetdesk.app/terms", env="TERMS_URL")
    dashboard_url: str = Field(default="https://fleetdesk.app/login", env="DASHBOARD_URL")

    # CORS
    enable_cors: bool = Field(default=True, env="ENABLE_CORS")
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        env="CORS_ORIGINS"
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    @field_validator("openai_temperature")
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        if not 0.0 <= v <= 2.0:
            raise ValueError("OpenAI temperature must be between 0.0 and 2.0")
        return v

    @field_validator("default_vat_rate")
    @classmethod
    def validate_vat_rate(cls, v: float) -> float:
        if not 0.0 <= v <= 100.0:
            raise ValueError("VAT rate must be between 0 and 100")
        return v

    @field_validator("tool_loop_max_iterations")
    @classmethod
    def validate_loop_cap(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Tool loop must allow at least one iteration")
        return v

    @property
    def store_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore",
    }


# Create global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings."""
    return settings
