"""
Configuration Module for WA Order Bot
=====================================

This module centralizes all configuration settings, environment variables, and
constants used throughout the WhatsApp order bot. Business logic never reads
the environment directly: the webhook pipeline builds a ``Settings`` object
once and hands it to every adapter it constructs. Parsers and the order state
machine take no configuration at all.

Configuration Categories:
-------------------------
- **Database**: SQLAlchemy connection URL.

- **Knowledge Base / LLM**: OpenAI chat and embedding models plus the
  similarity threshold used when ranking tenant documents.

- **Messaging**: Fonnte WhatsApp gateway endpoint and default country code.
  Device id and token are per tenant and live on the business profile.

- **Payments**: Midtrans server key, charge endpoint and QR expiry.

- **Media**: Where downloaded QR code PNGs are written and the public base
  URL they are served from.

- **Plan Limits**: Monthly AI response quota and registered-customer quota
  per subscription plan.

Environment Variables:
----------------------
- DATABASE_URL: SQLAlchemy URL (default: "sqlite:///./wa_order_bot.db")
- OPENAI_API_KEY: OpenAI key for replies and embeddings
- OPENAI_MODEL: Chat model (default: "gpt-4o-mini")
- OPENAI_EMBEDDING_MODEL: Embedding model (default: "text-embedding-3-small")
- RAG_SIMILARITY_THRESHOLD: Minimum cosine similarity (default: 0.65)
- RAG_MATCH_COUNT: Documents returned per search (default: 5)
- FONNTE_API_URL: Fonnte send endpoint (default: "https://api.fonnte.com/send")
- FONNTE_COUNTRY_CODE: Country code sent with each message (default: "62")
- MIDTRANS_SERVER_KEY: Midtrans server key (mock mode when unset)
- MIDTRANS_API_URL: Charge endpoint (default: Midtrans sandbox)
- PAYMENT_EXPIRY_MINUTES: QRIS expiry (default: 60)
- QR_STORAGE_DIR: Directory for stored QR PNGs (default: "./media")
- PUBLIC_BASE_URL: Base URL the media mount is reachable at
- HTTP_TIMEOUT_SECONDS: Timeout for outbound HTTP calls (default: 10)
- MAX_MESSAGE_LENGTH: Longest inbound message processed (default: 2000)
- RATE_LIMIT_WEBHOOK: Webhook rate limit (default: "120 per minute")
- RATE_LIMIT_ENABLED: Enable/disable rate limiting (default: "true")

Usage:
------
    from wa_order_bot.config import get_settings

    settings = get_settings()
    client = FonnteClient(settings)
"""

import os
from dataclasses import dataclass
from typing import Dict, Optional


# =============================================================================
# Plan Limits
# =============================================================================
# -1 means unlimited. Unknown plans are treated as "starter".

AI_RESPONSE_LIMITS: Dict[str, int] = {
    "starter": 1000,
    "professional": 10000,
    "enterprise": -1,
}

WHATSAPP_USER_LIMITS: Dict[str, int] = {
    "starter": 50,
    "professional": 500,
    "enterprise": -1,
}

DEFAULT_PLAN = "starter"


def get_ai_response_limit(plan: Optional[str]) -> int:
    """Return the monthly AI response quota for a plan (-1 = unlimited)."""
    return AI_RESPONSE_LIMITS.get(plan or DEFAULT_PLAN, AI_RESPONSE_LIMITS[DEFAULT_PLAN])


def get_whatsapp_user_limit(plan: Optional[str]) -> int:
    """Return the registered-customer quota for a plan (-1 = unlimited)."""
    return WHATSAPP_USER_LIMITS.get(plan or DEFAULT_PLAN, WHATSAPP_USER_LIMITS[DEFAULT_PLAN])


# =============================================================================
# Ordering Industries
# =============================================================================
# Tenants in these industries get the conversational order flow. Everyone
# else is answered from the knowledge base only.

ORDERING_INDUSTRIES = frozenset({"retail", "ecommerce", "services", "restaurant", "fnb"})


# =============================================================================
# Rate Limiting Configuration
# =============================================================================

RATE_LIMIT_WEBHOOK: str = os.getenv("RATE_LIMIT_WEBHOOK", "120 per minute")
RATE_LIMIT_ENABLED: bool = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"


def get_rate_limit_webhook() -> str:
    """Return the current webhook rate limit."""
    return RATE_LIMIT_WEBHOOK


# =============================================================================
# Settings Object
# =============================================================================

def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    """
    Explicit configuration handed to adapters at construction time.

    Every field has a working default so tests can build one with
    ``Settings()`` and override only what they care about.
    """
    database_url: str = "sqlite:///./wa_order_bot.db"

    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    openai_embedding_model: str = "text-embedding-3-small"
    rag_similarity_threshold: float = 0.65
    rag_match_count: int = 5

    fonnte_api_url: str = "https://api.fonnte.com/send"
    fonnte_country_code: str = "62"

    midtrans_server_key: Optional[str] = None
    midtrans_api_url: str = "https://api.sandbox.midtrans.com/v2/charge"
    payment_expiry_minutes: int = 60

    qr_storage_dir: str = "./media"
    public_base_url: str = "http://localhost:8000"

    http_timeout_seconds: float = 10.0
    max_message_length: int = 2000

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment."""
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_model=os.getenv("OPENAI_MODEL", cls.openai_model),
            openai_embedding_model=os.getenv("OPENAI_EMBEDDING_MODEL", cls.openai_embedding_model),
            rag_similarity_threshold=_env_float("RAG_SIMILARITY_THRESHOLD", cls.rag_similarity_threshold),
            rag_match_count=_env_int("RAG_MATCH_COUNT", cls.rag_match_count),
            fonnte_api_url=os.getenv("FONNTE_API_URL", cls.fonnte_api_url),
            fonnte_country_code=os.getenv("FONNTE_COUNTRY_CODE", cls.fonnte_country_code),
            midtrans_server_key=os.getenv("MIDTRANS_SERVER_KEY") or None,
            midtrans_api_url=os.getenv("MIDTRANS_API_URL", cls.midtrans_api_url),
            payment_expiry_minutes=_env_int("PAYMENT_EXPIRY_MINUTES", cls.payment_expiry_minutes),
            qr_storage_dir=os.getenv("QR_STORAGE_DIR", cls.qr_storage_dir),
            public_base_url=os.getenv("PUBLIC_BASE_URL", cls.public_base_url).rstrip("/"),
            http_timeout_seconds=_env_float("HTTP_TIMEOUT_SECONDS", cls.http_timeout_seconds),
            max_message_length=_env_int("MAX_MESSAGE_LENGTH", cls.max_message_length),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Return the process-wide settings, building them on first use.

    Tests reset the cache with ``reset_settings()`` after patching the
    environment.
    """
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
