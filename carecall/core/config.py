# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Core configuration: all env-driven, zero hardcode.
Single source of truth for every tunable parameter.
"""

import os


class Settings:
    """Application settings loaded from environment variables."""

    SERVICE_NAME: str = os.getenv("SERVICE_NAME", "carecall-orchestrator")
    SERVICE_VERSION: str = os.getenv("SERVICE_VERSION", "1.0.0")
    SERVICE_PORT: int = int(os.getenv("SERVICE_PORT", "8010"))

    # ── Voice-AI provider ──
    VOICE_API_KEY: str = os.getenv("VOICE_API_KEY", "")
    VOICE_API_BASE_URL: str = os.getenv(
        "VOICE_API_BASE_URL", "https://api.elevenlabs.io/v1"
    )
    VOICE_AGENT_ID: str = os.getenv(
        "VOICE_AGENT_ID", "agent_01jz1875qsffcsypwcrc58fdq5"
    )
    VOICE_API_TIMEOUT: float = float(os.getenv("VOICE_API_TIMEOUT", "10.0"))
    DEFAULT_VOICE_ID: str = os.getenv("DEFAULT_VOICE_ID", "QZOPTHiWteIgblFWoaMc")
    CONVERSATION_LANGUAGE: str = os.getenv("CONVERSATION_LANGUAGE", "en")

    # ── Turn-taking parameters sent at session start ──
    VAD_THRESHOLD: float = float(os.getenv("VAD_THRESHOLD", "0.5"))
    VAD_PREFIX_PADDING_MS: int = int(os.getenv("VAD_PREFIX_PADDING_MS", "300"))
    SILENCE_DURATION_MS: int = int(os.getenv("SILENCE_DURATION_MS", "500"))
    MAX_CALL_DURATION_SECONDS: int = int(os.getenv("MAX_CALL_DURATION_SECONDS", "900"))
    INACTIVITY_TIMEOUT_SECONDS: int = int(os.getenv("INACTIVITY_TIMEOUT_SECONDS", "30"))

    # ── Call orchestration ──
    CALL_GRACE_SECONDS: float = float(os.getenv("CALL_GRACE_SECONDS", "30"))
    SESSION_POLL_INTERVAL: float = float(os.getenv("SESSION_POLL_INTERVAL", "5.0"))
    RECENT_CALL_WINDOW_MINUTES: int = int(os.getenv("RECENT_CALL_WINDOW_MINUTES", "60"))

    # ── In-memory stores ──
    DEFAULT_HISTORY_LIMIT: int = int(os.getenv("DEFAULT_HISTORY_LIMIT", "100"))
    MAX_HISTORY_SIZE: int = int(os.getenv("MAX_HISTORY_SIZE", "10000"))
    DEFAULT_CALL_LOG_LIMIT: int = int(os.getenv("DEFAULT_CALL_LOG_LIMIT", "50"))
    MAX_CALL_LOG_SIZE: int = int(os.getenv("MAX_CALL_LOG_SIZE", "5000"))

    CORS_ORIGINS: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
