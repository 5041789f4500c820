"""Configuration management for Duty Alarm Bridge."""

from typing import List, Optional

from pydantic import Field, validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with validation."""

    # Application
    APP_NAME: str = "Duty Alarm Bridge"
    VERSION: str = "0.1.0"
    DEBUG: bool = Field(default=False, description="Enable debug mode")
    ENVIRONMENT: str = Field(default="development", description="Environment")

    # API Configuration
    HOST: str = Field(default="0.0.0.0", description="Host to bind")
    PORT: int = Field(default=8000, description="Port to bind")

    # Telegram
    TELEGRAM_BOT_TOKEN: str = Field(default="", description="Telegram bot token")
    TELEGRAM_API_URL: str = Field(
        default="https://api.telegram.org",
        description="Telegram Bot API base URL"
    )
    TELEGRAM_WEBHOOK_SECRET: Optional[str] = Field(
        default=None,
        description="Expected X-Telegram-Bot-Api-Secret-Token header value"
    )
    ALARM_CHANNEL_ID: str = Field(
        default="",
        description="Chat id of the escalation channel where alarms are broadcast"
    )

    # Twilio SMS / Voice
    TWILIO_ACCOUNT_SID: str = Field(default="", description="Twilio Account SID")
    TWILIO_AUTH_TOKEN: str = Field(default="", description="Twilio Auth Token")
    TWILIO_FROM_NUMBER: str = Field(default="", description="Twilio phone number")

    # Duty roster
    DUTY_CONTACTS_FILE: str = Field(
        default="duty_contacts.json",
        description="JSON file listing the on-call duty officers"
    )
    DUTY_PHONE_NUMBERS: str = Field(
        default="",
        description="Comma-separated fallback duty numbers when no contacts file exists"
    )

    # Escalation Configuration
    ESCALATION_SMS_DELAY_SECONDS: float = Field(
        default=60.0,
        description="Seconds without acceptance before the SMS tier fires"
    )
    ESCALATION_CALL_DELAY_SECONDS: float = Field(
        default=120.0,
        description="Seconds without acceptance before the voice call tier fires"
    )
    ALERT_RETENTION_MINUTES: int = Field(
        default=30,
        description="Minutes an unaccepted alert is kept after its call deadline"
    )
    ALERT_SWEEP_INTERVAL_SECONDS: int = Field(
        default=60,
        description="How often expired alerts are swept (seconds)"
    )

    # Monitoring & Observability
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    # Features
    ENABLE_SMS_ALERTS: bool = Field(
        default=True,
        description="Enable SMS escalation via Twilio"
    )
    ENABLE_VOICE_CALLS: bool = Field(
        default=True,
        description="Enable voice call escalation via Twilio"
    )

    @validator("DUTY_PHONE_NUMBERS", always=True)
    def validate_duty_numbers(cls, v: str) -> List[str]:
        """Convert comma-separated phone numbers to list."""
        if not v:
            return []
        return [num.strip() for num in v.split(",") if num.strip()]

    @validator("ESCALATION_SMS_DELAY_SECONDS", "ESCALATION_CALL_DELAY_SECONDS")
    def validate_delays(cls, v: float) -> float:
        """Escalation delays must be positive."""
        if v <= 0:
            raise ValueError("escalation delays must be positive")
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Global settings instance
settings = Settings()
