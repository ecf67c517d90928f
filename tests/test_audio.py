import os

import numpy as np
import pytest
import soundfile as sf

from roomscribe.config import AudioConfig
from roomscribe.services.audio_converter import (
    AudioConversionError,
    AudioConverterService,
    audio_duration,
    write_pcm16_wav,
)
from roomscribe.services.chunk_transcriber import ChunkAudio, ChunkTranscriptionAdapter
from roomscribe.services.room_registry import RoomRegistry

from conftest import IdentityNormalizer, TextAudioProvider


def _tone(seconds: float, samplerate: int = 16000) -> bytes:
    t = np.arange(int(seconds * samplerate)) / samplerate
    return (np.sin(2 * np.pi * 440 * t) * 8000).astype(np.int16).tobytes()


def test_write_pcm16_wav(tmp_path):
    path = str(tmp_path / "tone.wav")
    duration = write_pcm16_wav(_tone(1.0), path, samplerate=16000, channels=1)

    info = sf.info(path)
    assert duration == pytest.approx(1.0)
    assert info.samplerate == 16000
    assert info.channels == 1
    assert info.subtype == "PCM_16"
    assert audio_duration(path) == pytest.approx(1.0)


def test_write_pcm16_wav_drops_trailing_partial_frame(tmp_path):
    path = str(tmp_path / "stereo.wav")
    payload = np.zeros(200, dtype=np.int16).tobytes() + b"\x01"
    duration = write_pcm16_wav(payload, path, samplerate=100, channels=2)
    assert duration == pytest.approx(1.0)
    assert sf.info(path).frames == 100


def test_write_pcm16_wav_rejects_bad_layout(tmp_path):
    with pytest.raises(AudioConversionError):
        write_pcm16_wav(b"\x00\x00", str(tmp_path / "x.wav"), samplerate=16000, channels=0)


def test_audio_duration_of_garbage_file(tmp_path):
    path = tmp_path / "garbage.wav"
    path.write_bytes(b"not really audio")
    with pytest.raises(AudioConversionError):
        audio_duration(str(path))


def test_normalize_missing_input(tmp_path):
    converter = AudioConverterService(AudioConfig())
    with pytest.raises(AudioConversionError):
        converter.normalize(str(tmp_path / "missing.webm"))


def test_normalize_without_ffmpeg_binary(tmp_path):
    source = tmp_path / "chunk.webm"
    source.write_bytes(b"webm bytes")
    converter = AudioConverterService(AudioConfig(ffmpeg_path=str(tmp_path / "no-ffmpeg-here")))
    with pytest.raises(AudioConversionError):
        converter.normalize(str(source))


class RecordingNormalizer(IdentityNormalizer):
    def __init__(self) -> None:
        super().__init__()
        self.existed: list[bool] = []

    def normalize(self, input_path: str) -> str:
        self.existed.append(os.path.exists(input_path))
        return super().normalize(input_path)


class WavLengthProvider(TextAudioProvider):
    def transcribe(self, audio_path, *, language=None, context_hint=None) -> str:
        return f"{sf.info(audio_path).frames} frames in {language}"


def test_adapter_stages_pcm_as_wav_and_cleans_up(tmp_path):
    registry = RoomRegistry(str(tmp_path / "staging"))
    normalizer = RecordingNormalizer()
    adapter = ChunkTranscriptionAdapter(registry, normalizer, WavLengthProvider(), language="pt")

    outcome = adapter.transcribe(
        ChunkAudio("RM1", 3, _tone(0.5), audio_format="pcm16", sample_rate=16000, channels=1)
    )

    assert outcome.ok
    assert outcome.text == "8000 frames in pt"
    staged = normalizer.paths[0]
    assert os.path.basename(staged).startswith("chunk_3_")
    assert staged.endswith(".wav")
    assert normalizer.existed == [True]
    assert not os.path.exists(staged)


def test_adapter_reports_failures_as_values(tmp_path):
    registry = RoomRegistry(str(tmp_path / "staging"))

    class BrokenNormalizer:
        def __init__(self) -> None:
            self.paths: list[str] = []

        def normalize(self, input_path: str) -> str:
            self.paths.append(input_path)
            raise AudioConversionError("ffmpeg exited 1")

    normalizer = BrokenNormalizer()
    adapter = ChunkTranscriptionAdapter(registry, normalizer, TextAudioProvider())

    outcome = adapter.transcribe(ChunkAudio("RM1", 0, b"some audio"))

    assert not outcome.ok
    assert "normalization failed" in outcome.error
    assert not os.path.exists(normalizer.paths[0])


def test_adapter_provider_failure(tmp_path):
    registry = RoomRegistry(str(tmp_path / "staging"))
    adapter = ChunkTranscriptionAdapter(registry, IdentityNormalizer(), TextAudioProvider())

    outcome = adapter.transcribe(ChunkAudio("RM1", 0, b"FAIL"))

    assert outcome.text is None
    assert "transcription failed" in outcome.error


def test_adapter_empty_audio(tmp_path):
    registry = RoomRegistry(str(tmp_path / "staging"))
    adapter = ChunkTranscriptionAdapter(registry, IdentityNormalizer(), TextAudioProvider())
    assert adapter.transcribe(ChunkAudio("RM1", 0, b"")).error == "empty audio"


def test_adapter_sanitizes_unknown_format(tmp_path):
    registry = RoomRegistry(str(tmp_path / "staging"))
    normalizer = IdentityNormalizer()
    adapter = ChunkTranscriptionAdapter(registry, normalizer, TextAudioProvider())

    adapter.transcribe(ChunkAudio("RM1", 0, b"hello there", audio_format="../../etc"))

    assert normalizer.paths[0].endswith(".bin")
