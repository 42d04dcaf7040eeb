"""
config.py — Application Settings
================================
All tunables for the Story Chain service live here.

Values are read from the environment or a local `.env` file by
pydantic-settings. Use `get_settings()` everywhere instead of building a
`Settings()` directly so the whole process shares one instance.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # ═══════════════════════════════════════════════════
    # FastAPI Application Settings
    # ═══════════════════════════════════════════════════
    APP_NAME: str = "AI Story Chain"
    VERSION: str = "0.1.0"
    ENV: str = "development"  # "development" | "production"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # ═══════════════════════════════════════════════════
    # Server Configuration
    # ═══════════════════════════════════════════════════
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    BROADCAST_SEND_TIMEOUT: float = 5.0  # seconds; a slower subscriber is dropped

    # ═══════════════════════════════════════════════════
    # Room Rules
    # ═══════════════════════════════════════════════════
    ROOM_CODE_LENGTH: int = 6
    DEFAULT_MAX_ROUNDS: int = 5
    DEFAULT_AI_MODE: str = "manual_only"  # every_round | every_2_rounds | manual_only
    AUTO_TWIST_ENABLED: bool = True

    # ═══════════════════════════════════════════════════
    # Content Provider (Gemini)
    # ═══════════════════════════════════════════════════
    GEMINI_API_KEY: str = ""  # empty → every generation falls back
    GEMINI_API_URL: str = "https://generativelanguage.googleapis.com/v1beta/models"
    GEMINI_MODEL: str = "gemini-pro"
    CONTENT_PROVIDER_TIMEOUT: float = 15.0  # seconds
    GENERATION_TEMPERATURE: float = 0.8
    GENERATION_TOP_P: float = 0.9
    GENERATION_TOP_K: int = 40

    # Keyword screen applied to player and generated text
    CONTENT_FILTER_KEYWORDS: list[str] = [
        "violence",
        "explicit",
        "inappropriate",
        "offensive",
        "hate",
        "discrimination",
    ]

    # ═══════════════════════════════════════════════════
    # CORS Configuration
    # ═══════════════════════════════════════════════════
    CORS_ORIGINS: list[str] = ["*"]
    CORS_CREDENTIALS: bool = True
    CORS_METHODS: list[str] = ["*"]
    CORS_HEADERS: list[str] = ["*"]

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Return the process-wide Settings instance (created on first use).

    FastAPI endpoints can take it as a dependency:

    @app.get("/info")
    def info(settings: Settings = Depends(get_settings)):
        return {"env": settings.ENV}
    """
    global _settings
    if not _settings:
        _settings = Settings()
    return _settings
