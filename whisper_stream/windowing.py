"""Split a long waveform into overlapping fixed-length windows."""

import logging
from collections.abc import Iterator

import numpy as np

logger = logging.getLogger(__name__)

# Waveform samples per mel frame (10 ms at 16 kHz).
HOP_LENGTH = 160


class Window:
    """A copied slice ``[start, end)`` of the waveform."""

    __slots__ = ("index", "start", "end", "samples")

    def __init__(self, index: int, start: int, end: int, samples: np.ndarray):
        self.index = index
        self.start = start
        self.end = end
        self.samples = samples

    def __len__(self) -> int:
        return self.end - self.start

    def __repr__(self) -> str:
        return f"Window(index={self.index}, start={self.start}, end={self.end})"


def max_waveform_samples(n_frames: int, hop_length: int = HOP_LENGTH) -> int:
    """Number of waveform samples that produce at most ``n_frames`` mel frames."""
    if n_frames < 1:
        raise ValueError(f"n_frames must be positive, got {n_frames}")
    return hop_length * n_frames


def window_shift(window_length: int, overlap: int) -> int:
    """Distance between consecutive window starts; never less than one sample."""
    return max(1, window_length - overlap)


def window_count(n_samples: int, window_length: int, overlap: int) -> int:
    shift = window_shift(window_length, overlap)
    return -(-n_samples // shift)


def iter_windows(
    waveform: np.ndarray,
    sample_rate: int,
    window_length: int,
    overlap_seconds: float = 3.0,
) -> Iterator[Window]:
    """
    Lazily yield windows covering the whole waveform.

    Consecutive windows start ``max(1, window_length - overlap)`` samples apart,
    where ``overlap`` is ``overlap_seconds`` of audio at ``sample_rate``. The last
    window is clipped to the end of the waveform and may be shorter than
    ``window_length``. Each window owns a copy of its samples.

    Args:
        waveform: 1-D float32 mono samples
        sample_rate: Samples per second of ``waveform``
        window_length: Target window length in samples
        overlap_seconds: Audio shared by consecutive windows

    Yields:
        Window objects in increasing start order
    """
    if window_length < 1:
        raise ValueError(f"window_length must be positive, got {window_length}")
    if waveform.ndim != 1:
        raise ValueError(f"Expected a 1-D waveform, got shape {waveform.shape}")

    overlap = int(sample_rate * overlap_seconds)
    shift = window_shift(window_length, overlap)
    n_samples = len(waveform)
    n_windows = window_count(n_samples, window_length, overlap)

    logger.debug(
        f"Splitting {n_samples} samples into {n_windows} windows "
        f"(length={window_length}, shift={shift})"
    )

    for i in range(n_windows):
        start = i * shift
        end = min(start + window_length, n_samples)
        yield Window(i, start, end, np.array(waveform[start:end], dtype=np.float32, copy=True))
