import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "3000"))
    api_key: str = os.getenv("API_KEY", "super-secret-key")

    # Database settings
    database_path: str = os.getenv("DATABASE_PATH", "library.db")

    # Anthropic settings
    anthropic_api_key: Optional[str] = os.getenv("ANTHROPIC_API_KEY")
    anthropic_model: str = os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-20250514")
    anthropic_base_url: str = os.getenv("ANTHROPIC_BASE_URL", "https://api.anthropic.com")
    anthropic_max_tokens: int = int(os.getenv("ANTHROPIC_MAX_TOKENS", "4096"))
    llm_timeout: float = float(os.getenv("LLM_TIMEOUT", "55"))

    # AI assistant settings
    ai_request_timeout: float = float(os.getenv("AI_REQUEST_TIMEOUT", "60"))
    agent_max_iterations: int = int(os.getenv("AGENT_MAX_ITERATIONS", "5"))
    qa_answer_max_chars: int = int(os.getenv("QA_ANSWER_MAX_CHARS", "300"))
    recent_books_limit: int = int(os.getenv("RECENT_BOOKS_LIMIT", "5"))
    recommendation_genre_limit: int = int(os.getenv("RECOMMENDATION_GENRE_LIMIT", "3"))
    recommendation_limit: int = int(os.getenv("RECOMMENDATION_LIMIT", "5"))
    default_session_id: str = os.getenv("DEFAULT_SESSION_ID", "default")

    # Google Books API settings
    google_books_api_key: Optional[str] = os.getenv("GOOGLE_BOOKS_API_KEY")
    google_books_timeout: float = float(os.getenv("GOOGLE_BOOKS_TIMEOUT", "10"))

    # Application settings
    app_name: str = os.getenv("APP_NAME", "AI Library Manager")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = _env_flag("DEBUG", "False")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Feature flags
    enable_ai_features: bool = _env_flag("ENABLE_AI_FEATURES", "True")
    enable_metadata_fetch: bool = _env_flag("ENABLE_METADATA_FETCH", "True")


settings = Settings()
