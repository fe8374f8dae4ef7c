"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware and logging
- Initialize shared resources (batch transcriber, relay factory) once per process
- Register routes
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from adapters.asr.base import BatchTranscriber
from adapters.asr.gemini_batch import GeminiBatchTranscriber
from adapters.asr.gemini_live import GeminiLiveRelay
from adapters.asr.openai_batch import OpenAIBatchTranscriber, build_openai_client
from config import AppConfig
from observability.logger import configure_logging, log_event
from session.coordinator import RelayFactory

from server.routes import register_frontend, register_routes


def create_app(
    config: AppConfig | None = None,
    *,
    batch_transcriber: BatchTranscriber | None = None,
    relay_factory: RelayFactory | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Provider dependencies can be injected, which is how tests run the
    full websocket route without network access.
    """
    config = config or AppConfig.load_from_env()
    configure_logging(level=config.log_level, json_lines=config.enable_json_logs)

    app = FastAPI(title="Transcription Relay API")

    app.state.config = config

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Provider clients are built ONCE per process and shared by connections
    app.state.batch_transcriber = batch_transcriber or build_batch_transcriber(config)
    app.state.relay_factory = relay_factory or build_relay_factory(config)

    # Routes
    register_routes(app)
    if config.frontend_dist_dir:
        register_frontend(app, config.frontend_dist_dir)

    log_event({
        "event_type": "APP_CREATED",
        "env": config.env,
        "batch_provider": config.batch_provider,
        "live_model": config.live_model,
        "batch_interval_s": config.batch_interval_s,
    })
    return app


def build_batch_transcriber(config: AppConfig) -> BatchTranscriber:
    """Build the batch transcriber selected by BATCH_PROVIDER."""
    if config.batch_provider == "openai":
        if not config.openai_api_key:
            raise RuntimeError("OPENAI_API_KEY environment variable not set")
        return OpenAIBatchTranscriber(
            client=build_openai_client(config.openai_api_key),
            model=config.openai_batch_model,
        )

    if config.batch_provider == "gemini":
        if not config.gemini_api_key:
            raise RuntimeError("GEMINI_API_KEY environment variable not set")
        return GeminiBatchTranscriber(
            api_key=config.gemini_api_key,
            model=config.batch_model,
        )

    raise RuntimeError(f"Unknown BATCH_PROVIDER: {config.batch_provider}")


def build_relay_factory(config: AppConfig) -> RelayFactory:
    """Return a per-connection GeminiLiveRelay constructor."""
    api_key = config.gemini_api_key
    if not api_key:
        raise RuntimeError("GEMINI_API_KEY environment variable not set")

    def _factory(connection_id: str) -> GeminiLiveRelay:
        return GeminiLiveRelay(
            api_key=api_key,
            model=config.live_model,
            connection_id=connection_id,
        )

    return _factory
