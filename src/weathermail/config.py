"""Configuration settings for the application."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # These will be loaded from environment variables or a .env file if not provided
    LOG_LEVEL: str = "warning"  # Options: debug, info, warning, error, critical

    # Model gateway
    GATEWAY: str = "gemini"  # Options: gemini, openai, anthropic
    GOOGLE_API_KEY: str | None = None
    GEMINI_MODEL: str = "gemini-2.0-flash"
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_MODEL: str = "claude-3-5-haiku-latest"

    # Weather service
    WEATHER_URL: str = "https://wttr.in"
    HTTP_TIMEOUT: float = 30.0

    # Mail relay (all required by the send_email tool)
    SMTP_HOST: str | None = None
    SMTP_PORT: int | None = None
    SMTP_USER: str | None = None
    SMTP_PASS: str | None = None
    FROM_EMAIL: str | None = None
    SMTP_TIMEOUT: float = 30.0

    # Upper bound on tool-dispatch rounds per run
    MAX_TOOL_ITERATIONS: int = 6

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
