"""Audio loading at the boundary of the transcription core."""

import io
import logging
from pathlib import Path

import numpy as np
import soundfile as sf

from whisper_stream.errors import InvalidAudioFormat

logger = logging.getLogger(__name__)

REQUIRED_SAMPLE_RATE = 16000


def _check_format(audio_data: np.ndarray, sample_rate: int, required_rate: int) -> np.ndarray:
    if sample_rate != required_rate:
        raise InvalidAudioFormat(
            f"The audio sample rate must be {required_rate // 1000}k, got {sample_rate} Hz."
        )
    if audio_data.ndim != 1:
        raise InvalidAudioFormat(
            f"The audio must be single-channel, got {audio_data.shape[1]} channels."
        )
    return audio_data


def load_waveform(
    path: str | Path, required_rate: int = REQUIRED_SAMPLE_RATE
) -> tuple[np.ndarray, int]:
    """
    Read an audio file as float32 samples in [-1, 1].

    Raises:
        InvalidAudioFormat: the file is not mono at ``required_rate``
        OSError: the file cannot be opened
    """
    try:
        info = sf.info(str(path))
    except sf.LibsndfileError as e:
        if not Path(path).exists():
            raise FileNotFoundError(f"Audio file not found: {path}") from e
        raise InvalidAudioFormat(f"Unreadable audio file {path}: {e}") from e

    if info.channels != 1:
        raise InvalidAudioFormat(f"The audio must be single-channel, got {info.channels} channels.")

    audio_data, sample_rate = sf.read(str(path), dtype="float32")
    logger.debug(f"Loaded {len(audio_data)} samples at {sample_rate}Hz from {path}")
    return _check_format(audio_data, sample_rate, required_rate), sample_rate


def load_waveform_bytes(
    audio_bytes: bytes, required_rate: int = REQUIRED_SAMPLE_RATE
) -> tuple[np.ndarray, int]:
    """Same as :func:`load_waveform` for an in-memory audio file."""
    if not audio_bytes:
        raise InvalidAudioFormat("Empty audio")

    try:
        audio_data, sample_rate = sf.read(io.BytesIO(audio_bytes), dtype="float32")
    except sf.LibsndfileError as e:
        raise InvalidAudioFormat(f"Unreadable audio: {e}") from e

    logger.debug(f"Decoded {len(audio_data)} samples at {sample_rate}Hz")
    return _check_format(audio_data, sample_rate, required_rate), sample_rate
