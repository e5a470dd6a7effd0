"""
Application Settings - environment-driven configuration

Values come from process environment variables; `.env` files are loaded by
python-dotenv in `app.main` before the settings are first read.
"""

import os
from typing import Optional
from pydantic import BaseModel


DEFAULT_MODELS = {
    "ollama": "llama3.2",
    "openai": "gpt-4o-mini",
    "deepseek": "deepseek-chat",
    "claude": "claude-3-5-haiku-latest",
}

PROVIDER_KEY_VARS = {
    "openai": "OPENAI_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
    "claude": "ANTHROPIC_API_KEY",
}


class Settings(BaseModel):
    """Runtime settings for the travel assistant"""

    # Generation backend
    llm_provider: str = "ollama"
    llm_model: str = DEFAULT_MODELS["ollama"]
    llm_api_key: Optional[str] = None
    llm_base_url: Optional[str] = None
    ollama_base_url: str = "http://localhost:11434"
    llm_temperature: float = 0.7
    llm_max_tokens: int = 1000
    llm_timeout: float = 60.0
    llm_retry_attempts: int = 3
    llm_retry_delay: float = 1.0

    # External data lookups
    openweather_api_key: Optional[str] = None
    external_api_timeout: float = 5.0

    # Conversation store
    max_history_length: int = 20
    conversation_max_age_hours: float = 24.0
    cleanup_interval_minutes: float = 60.0

    # Server
    port: int = 3000

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables"""
        provider = os.getenv("LLM_PROVIDER", "ollama").lower()

        api_key = os.getenv("LLM_API_KEY")
        if not api_key and provider in PROVIDER_KEY_VARS:
            api_key = os.getenv(PROVIDER_KEY_VARS[provider])

        return cls(
            llm_provider=provider,
            llm_model=os.getenv("LLM_MODEL", DEFAULT_MODELS.get(provider, DEFAULT_MODELS["ollama"])),
            llm_api_key=api_key,
            llm_base_url=os.getenv("LLM_BASE_URL") or None,
            ollama_base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434"),
            llm_temperature=float(os.getenv("LLM_TEMPERATURE", "0.7")),
            llm_max_tokens=int(os.getenv("LLM_MAX_TOKENS", "1000")),
            llm_timeout=float(os.getenv("LLM_TIMEOUT", "60")),
            llm_retry_attempts=int(os.getenv("LLM_RETRY_ATTEMPTS", "3")),
            llm_retry_delay=float(os.getenv("LLM_RETRY_DELAY", "1.0")),
            openweather_api_key=os.getenv("OPENWEATHER_API_KEY") or None,
            external_api_timeout=float(os.getenv("EXTERNAL_API_TIMEOUT", "5")),
            max_history_length=int(os.getenv("MAX_HISTORY_LENGTH", "20")),
            conversation_max_age_hours=float(os.getenv("CONVERSATION_MAX_AGE_HOURS", "24")),
            cleanup_interval_minutes=float(os.getenv("CLEANUP_INTERVAL_MINUTES", "60")),
            port=int(os.getenv("PORT", "3000")),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the process-wide settings instance"""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
