import threading
from typing import Optional

import pytest

from roomscribe.config import OverlapConfig, StreamingConfig
from roomscribe.services.chunk_dispatch import ChunkDispatcher
from roomscribe.services.chunk_transcriber import ChunkTranscriptionAdapter
from roomscribe.services.finalization import FinalizationCoordinator
from roomscribe.services.llm.base import LLMProviderError
from roomscribe.services.room_registry import RoomRegistry
from roomscribe.services.streaming_transcription import StreamingTranscriptionService
from roomscribe.services.summarization import RoomSummary
from roomscribe.services.transcription.base import (
    TranscriptionProvider,
    TranscriptionProviderError,
)


class IdentityNormalizer:
    """Stands in for ffmpeg: the staged file is already "normalized"."""

    def __init__(self) -> None:
        self.paths: list[str] = []

    def normalize(self, input_path: str) -> str:
        self.paths.append(input_path)
        return input_path


class TextAudioProvider(TranscriptionProvider):
    """Treats the audio bytes as UTF-8 text. ``FAIL`` raises, ``BLOCK`` waits on ``gate``."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Optional[str]]] = []
        self.gate = threading.Event()
        self._lock = threading.Lock()

    def transcribe(self, audio_path, *, language=None, context_hint=None) -> str:
        with open(audio_path, "rb") as audio_file:
            text = audio_file.read().decode("utf-8")
        with self._lock:
            self.calls.append((text, context_hint))
        if text.startswith("BLOCK"):
            self.gate.wait(10)
            text = text[len("BLOCK"):].strip()
        if text == "FAIL":
            raise TranscriptionProviderError("backend down")
        return text

    @property
    def call_count(self) -> int:
        with self._lock:
            return len(self.calls)


class FakeSummarizer:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[tuple[str, Optional[str], str]] = []

    def summarize_room(self, room_id, room_name, transcript):
        self.calls.append((room_id, room_name, transcript))
        if self.fail:
            raise LLMProviderError("model unavailable")
        return RoomSummary.from_fields(
            room_id,
            room_name,
            {
                "generalSummary": f"Summary of {len(transcript.split())} words",
                "topicsDiscussed": ["kickoff"],
                "overallSentiment": "positive",
            },
            provider="FakeSummarizer",
        )


class Engine:
    def __init__(
        self, tmp_path, *, finalize_timeout: float = 5.0, summarizer=None, workers: int = 4
    ) -> None:
        self.config = StreamingConfig(
            workers=workers,
            finalize_timeout_seconds=finalize_timeout,
            overlap=OverlapConfig(),
        )
        self.registry = RoomRegistry(str(tmp_path / "staging"))
        self.normalizer = IdentityNormalizer()
        self.provider = TextAudioProvider()
        self.summarizer = summarizer
        adapter = ChunkTranscriptionAdapter(
            self.registry, self.normalizer, self.provider, language="pt"
        )
        self.dispatcher = ChunkDispatcher(self.registry, adapter, self.config)
        self.coordinator = FinalizationCoordinator(
            self.registry, self.config, summarizer=summarizer
        )
        self.service = StreamingTranscriptionService(
            self.registry, self.dispatcher, self.coordinator
        )

    def submit(self, room_id: str, index: int, text: str, **kwargs):
        return self.service.submit_chunk(room_id, index, text.encode("utf-8"), **kwargs)

    def wait_idle(self, room_id: str, timeout: float = 5.0) -> None:
        state = self.registry.get(room_id)
        assert state is not None
        assert state.wait_drained(timeout)

    def close(self) -> None:
        self.provider.gate.set()
        self.dispatcher.shutdown(wait=True)


@pytest.fixture
def engine(tmp_path):
    built = Engine(tmp_path)
    yield built
    built.close()


@pytest.fixture
def make_engine(tmp_path):
    built: list[Engine] = []

    def factory(**kwargs) -> Engine:
        instance = Engine(tmp_path / f"engine{len(built)}", **kwargs)
        built.append(instance)
        return instance

    yield factory
    for instance in built:
        instance.close()
