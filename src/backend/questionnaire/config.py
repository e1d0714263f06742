import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .errors import ConfigurationError

load_dotenv()

SESSION_STORE_BACKENDS = {"memory", "redis"}


def _int_env(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass(slots=True)
class Settings:
    ollama_model: str
    cors_origins: list[str]
    session_store: str
    redis_url: str | None
    reports_dir: Path
    public_base_url: str
    max_questions: int
    log_level: str

    @classmethod
    def load(cls) -> "Settings":
        session_store = os.getenv("SESSION_STORE", "memory").strip().lower()
        if session_store not in SESSION_STORE_BACKENDS:
            raise ConfigurationError(
                f"SESSION_STORE must be one of {sorted(SESSION_STORE_BACKENDS)}, got {session_store!r}"
            )
        redis_url = os.getenv("REDIS_URL", "redis://localhost:6379/0").strip() or None
        if session_store == "redis" and not redis_url:
            raise ConfigurationError("REDIS_URL is required when SESSION_STORE=redis")
        max_questions = _int_env("MAX_QUESTIONS", "10")
        if max_questions < 1:
            raise ConfigurationError("MAX_QUESTIONS must be at least 1")
        return cls(
            ollama_model=os.getenv("OLLAMA_MODEL", "llama3.1"),
            cors_origins=os.getenv("CORS_ORIGINS", "*").split(","),
            session_store=session_store,
            redis_url=redis_url,
            reports_dir=Path(os.getenv("REPORTS_DIR", "reports")),
            public_base_url=os.getenv("PUBLIC_BASE_URL", "http://127.0.0.1:8000").rstrip("/"),
            max_questions=max_questions,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=level or os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
