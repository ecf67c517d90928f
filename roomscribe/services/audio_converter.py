"""
Audio normalization for incoming chunks.

Browser recorders send webm/opus (or ogg, mp4) slices; some clients send raw
int16 PCM. Everything is turned into a 16 kHz mono PCM16 WAV with a speech
cleanup filter chain before it reaches the transcriber.
"""

from __future__ import annotations

import logging
import os
import subprocess

import numpy as np
import soundfile as sf

from roomscribe.config import AudioConfig

# 1. highpass at 80 Hz removes rumble
# 2. lowpass at 8 kHz removes hiss above the speech band
# 3. afftdn is moderate FFT noise reduction
# 4. compand compresses dynamic range so quiet speakers stay audible
# 5. loudnorm evens out levels between chunks
SPEECH_FILTERS = ",".join(
    [
        "highpass=f=80",
        "lowpass=f=8000",
        "afftdn=nf=-20",
        "compand=attacks=0.3:decays=0.8:points=-80/-80|-45/-45|-27/-25|0/-7|20/-7",
        "loudnorm=I=-16:TP=-1.5:LRA=11",
    ]
)


class AudioConversionError(RuntimeError):
    pass


def write_pcm16_wav(
    audio_bytes: bytes, path: str, samplerate: int, channels: int
) -> float:
    """Write interleaved int16 PCM to a WAV file. Returns the duration in seconds."""
    if channels < 1 or samplerate < 1:
        raise AudioConversionError("samplerate and channels must be positive")
    usable = len(audio_bytes) - (len(audio_bytes) % (2 * channels))
    audio = np.frombuffer(audio_bytes[:usable], dtype=np.int16)
    if channels > 1:
        audio = audio.reshape(-1, channels)

    with sf.SoundFile(
        path,
        mode="w",
        samplerate=samplerate,
        channels=channels,
        subtype="PCM_16",
    ) as sound_file:
        sound_file.write(audio)

    frames = usable // (2 * channels)
    return frames / samplerate


def audio_duration(path: str) -> float:
    try:
        info = sf.info(path)
    except RuntimeError as exc:
        raise AudioConversionError(f"Unreadable audio: {exc}") from exc
    return float(info.duration)


class AudioConverterService:
    def __init__(self, config: AudioConfig) -> None:
        self._config = config
        self._logger = logging.getLogger("roomscribe.audio")

    def normalize(self, input_path: str) -> str:
        """Convert ``input_path`` to a filtered 16 kHz mono PCM16 WAV next to it.

        Raises:
            AudioConversionError: ffmpeg failed, timed out, or the result is
                shorter than ``min_audio_seconds``
        """
        if not os.path.exists(input_path):
            raise AudioConversionError(f"Input not found: {input_path}")

        stem, _ = os.path.splitext(input_path)
        output_path = f"{stem}_converted.wav"
        command = [
            self._config.ffmpeg_path,
            "-hide_banner",
            "-loglevel", "error",
            "-i", input_path,
            "-af", SPEECH_FILTERS,
            "-ar", str(self._config.sample_rate),
            "-ac", "1",
            "-sample_fmt", "s16",
            "-f", "wav",
            "-y",
            output_path,
        ]

        try:
            completed = subprocess.run(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                timeout=self._config.timeout_seconds,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            self._remove_quietly(output_path)
            raise AudioConversionError(
                f"ffmpeg timed out after {self._config.timeout_seconds:.0f}s"
            ) from exc
        except OSError as exc:
            raise AudioConversionError(f"Failed to run ffmpeg: {exc}") from exc

        if completed.returncode != 0 or not os.path.exists(output_path):
            output = completed.stdout.decode("utf-8", errors="replace")[:500]
            self._remove_quietly(output_path)
            raise AudioConversionError(f"ffmpeg exited {completed.returncode}: {output}")

        duration = audio_duration(output_path)
        if duration < self._config.min_audio_seconds:
            self._remove_quietly(output_path)
            raise AudioConversionError(f"Audio too short: {duration:.2f}s")

        self._logger.debug("Normalized %s (%.2fs)", os.path.basename(input_path), duration)
        return output_path

    def _remove_quietly(self, path: str) -> None:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            self._logger.warning("Failed to remove %s: %s", path, exc)
