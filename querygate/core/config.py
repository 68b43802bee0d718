import os
from functools import lru_cache
from typing import List, Optional
from dotenv import load_dotenv

load_dotenv()


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


class Settings:
    """Application settings."""

    def __init__(
        self,
        connect_timeout_seconds: Optional[float] = None,
        execution_timeout_seconds: Optional[float] = None,
    ):
        # API configuration
        self.API_V1_STR: str = "/api/v1"

        # Project metadata
        self.PROJECT_NAME: str = "Polyglot Query Gateway"
        self.PROJECT_DESCRIPTION: str = "Runs one dialect-specific query against PostgreSQL, MySQL/MariaDB or MongoDB and returns JSON-safe rows."
        self.VERSION: str = "0.1.0"

        # CORS configuration
        self.CORS_ORIGINS: List[str] = [
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:8080").split(",")
            if origin.strip()
        ]

        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

        # Gateway timeouts (seconds)
        self.CONNECT_TIMEOUT_SECONDS: float = (
            connect_timeout_seconds
            if connect_timeout_seconds is not None
            else _float_env("CONNECT_TIMEOUT_SECONDS", 5.0)
        )
        self.EXECUTION_TIMEOUT_SECONDS: float = (
            execution_timeout_seconds
            if execution_timeout_seconds is not None
            else _float_env("EXECUTION_TIMEOUT_SECONDS", 30.0)
        )
        if self.CONNECT_TIMEOUT_SECONDS >= self.EXECUTION_TIMEOUT_SECONDS:
            raise ValueError(
                "CONNECT_TIMEOUT_SECONDS must be shorter than EXECUTION_TIMEOUT_SECONDS "
                f"({self.CONNECT_TIMEOUT_SECONDS} >= {self.EXECUTION_TIMEOUT_SECONDS})"
            )

        # Query translation (external LLM service)
        self.OPENAI_API_KEY: Optional[str] = os.getenv("OPENAI_API_KEY")
        self.OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")


@lru_cache()
def get_settings() -> Settings:
    return Settings()
