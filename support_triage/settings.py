"""Runtime configuration for the triage pipeline."""

from __future__ import annotations

import dataclasses
import os
from functools import lru_cache

from dotenv import load_dotenv


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str) -> tuple[str, ...]:
    value = os.getenv(name) or ""
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclasses.dataclass(frozen=True)
class TriageSettings:
    """Pipeline tunables resolved once per process."""

    database_url: str | None = None
    openai_api_key: str | None = None
    classifier_model: str = "gpt-4o-mini"
    draft_model: str = "gpt-4o-mini"
    classify_timeout_seconds: float = 15.0
    retrieval_timeout_seconds: float = 10.0
    generation_timeout_seconds: float = 45.0
    min_intent_confidence: float = 0.5
    search_limit: int = 5
    search_min_score: float = 0.3
    history_limit: int = 5
    history_message_chars: int = 1000
    instruction_ttl_seconds: float = 300.0
    intent_refresh_seconds: float = 300.0
    agent_name: str = "Lina"
    company_name: str = "our store"
    competitors: tuple[str, ...] = ()
    stale_thread_days: int = 7
    stale_response_days: int = 3
    auto_send_enabled: bool = False
    auto_send_threshold: float = 0.85
    require_verification_for_send: bool = True
    embedding_model: str = "BAAI/bge-small-en-v1.5"
    rate_limit: str = "60/minute"

    @property
    def signature(self) -> str:
        return f"– {self.agent_name}"


@lru_cache(maxsize=1)
def get_settings() -> TriageSettings:
    """Load settings from the environment (and ``.env`` when present)."""

    load_dotenv()
    return TriageSettings(
        database_url=os.getenv("DATABASE_URL") or None,
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        classifier_model=os.getenv("TRIAGE_CLASSIFIER_MODEL", "gpt-4o-mini"),
        draft_model=os.getenv("TRIAGE_DRAFT_MODEL", "gpt-4o-mini"),
        classify_timeout_seconds=float(os.getenv("TRIAGE_CLASSIFY_TIMEOUT", "15")),
        retrieval_timeout_seconds=float(os.getenv("TRIAGE_RETRIEVAL_TIMEOUT", "10")),
        generation_timeout_seconds=float(os.getenv("TRIAGE_GENERATION_TIMEOUT", "45")),
        min_intent_confidence=float(os.getenv("TRIAGE_MIN_INTENT_CONFIDENCE", "0.5")),
        search_limit=int(os.getenv("TRIAGE_SEARCH_LIMIT", "5")),
        search_min_score=float(os.getenv("TRIAGE_SEARCH_MIN_SCORE", "0.3")),
        history_limit=int(os.getenv("TRIAGE_HISTORY_LIMIT", "5")),
        history_message_chars=int(os.getenv("TRIAGE_HISTORY_MESSAGE_CHARS", "1000")),
        instruction_ttl_seconds=float(os.getenv("TRIAGE_INSTRUCTION_TTL", "300")),
        intent_refresh_seconds=float(os.getenv("TRIAGE_INTENT_REFRESH", "300")),
        agent_name=os.getenv("TRIAGE_AGENT_NAME", "Lina"),
        company_name=os.getenv("TRIAGE_COMPANY_NAME", "our store"),
        competitors=_env_list("TRIAGE_COMPETITORS"),
        stale_thread_days=int(os.getenv("TRIAGE_STALE_THREAD_DAYS", "7")),
        stale_response_days=int(os.getenv("TRIAGE_STALE_RESPONSE_DAYS", "3")),
        auto_send_enabled=_env_bool("TRIAGE_AUTO_SEND_ENABLED", False),
        auto_send_threshold=float(os.getenv("TRIAGE_AUTO_SEND_THRESHOLD", "0.85")),
        require_verification_for_send=_env_bool(
            "TRIAGE_REQUIRE_VERIFICATION_FOR_SEND", True
        ),
        embedding_model=os.getenv("EMBEDDING_MODEL", "BAAI/bge-small-en-v1.5"),
        rate_limit=os.getenv("TRIAGE_RATE_LIMIT", "60/minute"),
    )


def reset_settings_cache() -> None:
    """Clear cached settings; useful in tests when env vars change."""

    get_settings.cache_clear()
