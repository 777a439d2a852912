"""Application configuration with environment-first defaults.

Environment variables override all defaults.
CRITICAL: WhatsApp credentials must be set in .env - startup fails fast if missing in production.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env for local development (no-op if the file is absent)
_BACKEND_DIR = Path(__file__).resolve().parents[2]
load_dotenv(dotenv_path=_BACKEND_DIR / ".env", override=False)


class Settings:
    # Database Configuration
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./quotebot.db")

    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    DEBUG: bool = ENVIRONMENT == "development"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # WhatsApp Cloud API (Must be set via .env, never in code)
    WHATSAPP_ACCESS_TOKEN: str = os.getenv("WHATSAPP_ACCESS_TOKEN", "")
    WHATSAPP_PHONE_NUMBER_ID: str = os.getenv("WHATSAPP_PHONE_NUMBER_ID", "")
    WHATSAPP_API_VERSION: str = os.getenv("WHATSAPP_API_VERSION", "v18.0")
    WHATSAPP_VERIFY_TOKEN: str = os.getenv("WHATSAPP_VERIFY_TOKEN", "")
    WHATSAPP_TIMEOUT_SECONDS: float = float(os.getenv("WHATSAPP_TIMEOUT_SECONDS", "10"))

    # Groq (entity extraction + voice transcription)
    GROQ_API_KEY: str = os.getenv("GROQ_API_KEY", "")
    GROQ_MODEL: str = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")
    GROQ_TRANSCRIPTION_MODEL: str = os.getenv("GROQ_TRANSCRIPTION_MODEL", "whisper-large-v3")

    # NLU backend: "llm", "rules" or "auto" (llm when a Groq key is present)
    NLU_BACKEND: str = os.getenv("NLU_BACKEND", "auto")
    NLU_TIMEOUT_SECONDS: float = float(os.getenv("NLU_TIMEOUT_SECONDS", "8"))
    CATALOG_TIMEOUT_SECONDS: float = float(os.getenv("CATALOG_TIMEOUT_SECONDS", "5"))
    ENTITY_CONFIDENCE_THRESHOLD: float = float(os.getenv("ENTITY_CONFIDENCE_THRESHOLD", "0.5"))

    # Pricing API
    PRICING_API_URL: str = os.getenv("PRICING_API_URL", "")
    PRICING_API_KEY: str = os.getenv("PRICING_API_KEY", "")
    PRICING_TIMEOUT_SECONDS: float = float(os.getenv("PRICING_TIMEOUT_SECONDS", "15"))

    # Housekeeping
    CONVERSATION_STALE_MINUTES: int = int(os.getenv("CONVERSATION_STALE_MINUTES", "30"))
    INACTIVE_CONVERSATION_RETENTION_HOURS: int = int(
        os.getenv("INACTIVE_CONVERSATION_RETENTION_HOURS", "24")
    )
    MESSAGE_RETENTION_DAYS: int = int(os.getenv("MESSAGE_RETENTION_DAYS", "7"))
    SWEEP_INTERVAL_SECONDS: int = int(os.getenv("SWEEP_INTERVAL_SECONDS", "300"))
    LEDGER_CACHE_SIZE: int = int(os.getenv("LEDGER_CACHE_SIZE", "2048"))

    # Quotes
    QUOTE_VALIDITY_DAYS: int = int(os.getenv("QUOTE_VALIDITY_DAYS", "30"))
    COMPANY_NAME: str = os.getenv("COMPANY_NAME", "Print Quote Desk")

    # Contact details for the "contact" command; empty lines are left out
    BUSINESS_HOURS: str = os.getenv("BUSINESS_HOURS", "Monday - Friday: 9:00 AM - 6:00 PM")
    CONTACT_PHONE: str = os.getenv("CONTACT_PHONE", "")
    CONTACT_EMAIL: str = os.getenv("CONTACT_EMAIL", "")
    CONTACT_WEBSITE: str = os.getenv("CONTACT_WEBSITE", "")

    def validate(self) -> None:
        """
        Fail fast on missing credentials in production.

        In development the bot still boots so the webhook and catalog can be
        exercised locally; outbound sends will fail with TransportError.
        """
        if self.ENVIRONMENT != "production":
            return
        missing = [
            name for name in (
                "WHATSAPP_ACCESS_TOKEN",
                "WHATSAPP_PHONE_NUMBER_ID",
                "WHATSAPP_VERIFY_TOKEN",
                "PRICING_API_URL",
            )
            if not getattr(self, name)
        ]
        if missing:
            raise ValueError(
                f"⛔ CRITICAL: {', '.join(missing)} must be set in production environment."
            )


settings = Settings()
