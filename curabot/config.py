"""CuraBot configuration management using pydantic-settings."""

from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env from project root so service keys are available
load_dotenv(Path(__file__).resolve().parent.parent / ".env")


class GeneralSettings(BaseSettings):
    db_url: str = Field(default="postgresql+asyncpg://localhost/curabot")
    log_level: str = "INFO"
    screenshots_dir: Path = Field(default=Path.home() / ".local/share/curabot/screenshots")
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"])


class AuthSettings(BaseSettings):
    """Verification settings for session tokens issued by the auth provider."""

    model_config = SettingsConfigDict(env_prefix="AUTH_")
    jwt_key: str = ""
    jwt_algorithms: list[str] = Field(default_factory=lambda: ["RS256"])
    jwt_issuer: Optional[str] = None
    session_cookie: str = "__session"


class AutomationSettings(BaseSettings):
    """Settings for the external web automation service."""

    model_config = SettingsConfigDict(env_prefix="AUTOMATION_")
    api_url: str = "http://localhost:8000"
    api_key: str = ""
    ingest_api_key: str = ""
    request_timeout: float = 30.0
    reconnect_delay_seconds: float = 3.0
    reconnect_backoff_max_seconds: float = 30.0
    max_reconnect_attempts: int = 5


class VoiceSettings(BaseSettings):
    """Settings for the conversational voice agent (ElevenLabs)."""

    model_config = SettingsConfigDict(env_prefix="ELEVENLABS_")
    enabled: bool = True
    api_key: str = ""
    base_url: str = "https://api.elevenlabs.io"
    phone_number_id: str = ""
    default_voice_id: str = ""
    llm: str = "gpt-4o-mini"


class StripeSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="STRIPE_")
    secret_key: str = ""
    webhook_secret: str = ""


class Settings(BaseSettings):
    """Top-level settings assembled from subsections."""

    general: GeneralSettings = Field(default_factory=GeneralSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    automation: AutomationSettings = Field(default_factory=AutomationSettings)
    voice: VoiceSettings = Field(default_factory=VoiceSettings)
    stripe: StripeSettings = Field(default_factory=StripeSettings)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Settings":
        """Load settings from TOML config file, falling back to defaults."""
        if config_path is None:
            config_path = Path.home() / ".config/curabot/config.toml"

        if config_path.exists():
            import toml

            data = toml.load(config_path)
            return cls(
                general=GeneralSettings(**data.get("general", {})),
                auth=AuthSettings(**data.get("auth", {})),
                automation=AutomationSettings(**data.get("automation", {})),
                voice=VoiceSettings(**data.get("voice", {})),
                stripe=StripeSettings(**data.get("stripe", {})),
            )

        return cls()


# Module-level singleton
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings
