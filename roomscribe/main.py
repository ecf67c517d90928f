import os

# faster-whisper pulls models through huggingface_hub; its tqdm bars misbehave in worker threads.
# This MUST be set before importing any libraries that use huggingface_hub
os.environ.setdefault("HF_HUB_DISABLE_PROGRESS_BARS", "1")

import json
import logging
import threading
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from roomscribe.config import (
    parse_audio_config,
    parse_streaming_config,
    parse_transcription_config,
    parse_webhook_config,
)
from roomscribe.context import AppContext
from roomscribe.routers.rooms import create_rooms_router
from roomscribe.routers.transcription import create_transcription_router
from roomscribe.routers.webhooks import create_webhooks_router
from roomscribe.services.audio_converter import AudioConverterService
from roomscribe.services.chunk_dispatch import ChunkDispatcher
from roomscribe.services.chunk_transcriber import AudioNormalizer, ChunkTranscriptionAdapter
from roomscribe.services.crash_logging import enable_crash_logging
from roomscribe.services.finalization import FinalizationCoordinator, Summarizer
from roomscribe.services.llm.ollama_provider import check_ollama_reachable
from roomscribe.services.logging_setup import configure_logging
from roomscribe.services.room_registry import RoomJanitor, RoomRegistry
from roomscribe.services.signature import WebhookSignatureValidator
from roomscribe.services.streaming_transcription import StreamingTranscriptionService
from roomscribe.services.summarization import SummarizationService
from roomscribe.services.transcription import (
    TranscriptionProvider,
    create_transcription_provider,
)


def _load_config(config_path: str, logger: logging.Logger) -> dict:
    if not os.path.exists(config_path):
        logger.info("Boot: config_path missing=%s, using defaults", config_path)
        return {}
    logger.info("Boot: loading config_path=%s", config_path)
    with open(config_path, "r", encoding="utf-8") as config_file:
        config = json.load(config_file)
    logger.info("Boot: config keys=%s", sorted(config.keys()))
    return config


def _resolve_data_dir(config: dict, default_data_dir: str, logger: logging.Logger) -> str:
    custom_data_dir = config.get("data_dir", "")
    if custom_data_dir and os.path.isdir(custom_data_dir) and os.access(custom_data_dir, os.W_OK):
        logger.info("Boot: using custom data_dir=%s", custom_data_dir)
        return custom_data_dir
    if custom_data_dir:
        logger.warning(
            "Boot: custom data_dir=%s is invalid or not writable, falling back to %s",
            custom_data_dir, default_data_dir,
        )
    else:
        logger.info("Boot: using default data_dir=%s", default_data_dir)
    return default_data_dir


def _read_version(cwd: str) -> str:
    version_path = os.path.join(cwd, "VERSION.txt")
    version = "v0.1.0"
    if os.path.exists(version_path):
        with open(version_path, "r", encoding="utf-8") as version_file:
            version = version_file.read().strip() or version
    return version


def create_app(
    cwd: Optional[str] = None,
    *,
    transcription_provider: Optional[TranscriptionProvider] = None,
    normalizer: Optional[AudioNormalizer] = None,
    summarizer: Optional[Summarizer] = None,
) -> FastAPI:
    """Build the service. Collaborators default to the configured backends."""
    cwd = cwd or os.getcwd()
    logs_dir = os.path.join(cwd, "logs")
    configure_logging(logs_dir)
    logger = logging.getLogger("roomscribe.boot")
    logger.info("Boot: starting create_app cwd=%s", cwd)
    enable_crash_logging(logs_dir)

    default_data_dir = os.path.join(cwd, "data")
    os.makedirs(default_data_dir, exist_ok=True)
    # Config always lives in the default data dir regardless of custom data_dir
    config_path = os.path.join(default_data_dir, "config.json")
    config = _load_config(config_path, logger)

    ctx = AppContext(
        cwd=cwd,
        data_dir=_resolve_data_dir(config, default_data_dir, logger),
        config_path=config_path,
    )
    ctx.ensure_dirs()
    logger.info("Boot: AppContext ready data_dir=%s staging_dir=%s", ctx.data_dir, ctx.staging_dir)

    streaming_config = parse_streaming_config(config.get("streaming", {}))
    transcription_config = parse_transcription_config(config.get("transcription", {}))
    audio_config = parse_audio_config(config.get("audio", {}))
    webhook_config = parse_webhook_config(config.get("webhooks", {}))

    if transcription_provider is None:
        transcription_provider = create_transcription_provider(transcription_config)
    logger.info("Boot: transcription provider=%s", transcription_provider.name())
    if normalizer is None:
        normalizer = AudioConverterService(audio_config)

    if summarizer is None:
        summarization_service = SummarizationService(ctx.config_path)
        summarizer = summarization_service
        provider_name = summarization_service.selected_provider_name()
        logger.info("Boot: summarization provider=%s", provider_name or "none")
        if provider_name == "ollama":
            ollama_url = (
                config.get("providers", {}).get("ollama", {}).get("base_url")
                or "http://127.0.0.1:11434"
            )
            threading.Thread(
                target=check_ollama_reachable,
                args=(ollama_url,),
                daemon=True,
                name="ollama-probe",
            ).start()

    registry = RoomRegistry(ctx.staging_dir)
    adapter = ChunkTranscriptionAdapter(
        registry,
        normalizer,
        transcription_provider,
        language=transcription_config.language,
    )
    dispatcher = ChunkDispatcher(registry, adapter, streaming_config)
    coordinator = FinalizationCoordinator(registry, streaming_config, summarizer=summarizer)
    streaming_service = StreamingTranscriptionService(registry, dispatcher, coordinator)
    janitor = RoomJanitor(
        registry,
        finalized_retention_seconds=streaming_config.finalized_retention_seconds,
        abandoned_room_seconds=streaming_config.abandoned_room_seconds,
        interval_seconds=streaming_config.janitor_interval_seconds,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        janitor.start()
        try:
            yield
        finally:
            janitor.stop()
            dispatcher.shutdown()
            logger.info("Shutdown complete")

    version = _read_version(cwd)
    app = FastAPI(title="Roomscribe", version=version.lstrip("v"), lifespan=lifespan)
    app.state.version = version
    app.state.ctx = ctx
    app.state.streaming_service = streaming_service
    app.state.registry = registry
    app.state.janitor = janitor

    app.include_router(create_transcription_router(streaming_service))
    logger.info("Boot: transcription router mounted")
    app.include_router(create_rooms_router(streaming_service))
    logger.info("Boot: rooms router mounted")
    app.include_router(
        create_webhooks_router(streaming_service, WebhookSignatureValidator(webhook_config))
    )
    logger.info(
        "Boot: webhooks router mounted (signature validation=%s)",
        "on" if webhook_config.validation_enabled else "off",
    )

    @app.get("/api/health")
    def health() -> dict:
        return {"status": "ok", "version": app.state.version}

    logger.info("Boot: create_app complete workers=%s", streaming_config.workers)
    return app
