"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No relay logic
- No protocol constants (see spec.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from spec import BATCH_INTERVAL_S


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the app factory and each ConnectionCoordinator.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str
    host: str
    port: int

    # ------------------------------------------------------------------
    # Streaming path (Gemini Live)
    # ------------------------------------------------------------------

    gemini_api_key: str | None
    live_model: str

    # ------------------------------------------------------------------
    # Batch path
    # ------------------------------------------------------------------

    batch_provider: str
    batch_model: str
    openai_api_key: str | None
    openai_batch_model: str
    batch_interval_s: float

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool

    # ------------------------------------------------------------------
    # Static frontend (optional)
    # ------------------------------------------------------------------

    frontend_dist_dir: str | None

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Does not validate provider keys; the app factory does that so
        tests can build configs without secrets.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            host=os.environ.get("HOST", "0.0.0.0"),
            port=int(os.environ.get("PORT", "8000")),

            gemini_api_key=os.environ.get("GEMINI_API_KEY"),
            live_model=os.environ.get("GEMINI_LIVE_MODEL", "gemini-live-2.5-flash-preview"),

            batch_provider=os.environ.get("BATCH_PROVIDER", "gemini").lower(),
            batch_model=os.environ.get("BATCH_MODEL", "gemini-2.5-flash"),
            openai_api_key=os.environ.get("OPENAI_API_KEY"),
            openai_batch_model=os.environ.get("OPENAI_BATCH_MODEL", "gpt-4o-audio-preview"),
            batch_interval_s=float(os.environ.get("BATCH_INTERVAL_S", str(BATCH_INTERVAL_S))),

            enable_json_logs=os.environ.get("ENABLE_JSON_LOGS", "1") == "1",
            frontend_dist_dir=os.environ.get("FRONTEND_DIST_DIR") or None,
        )
