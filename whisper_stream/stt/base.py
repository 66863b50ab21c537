from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from enum import Enum

import numpy as np
import torch

from whisper_stream.config import TranscriptionSettings


class SpecialToken(str, Enum):
    """Kinds of control tokens the tokenizer can resolve."""

    START_OF_TRANSCRIPT = "start_of_transcript"
    LANGUAGE = "language"
    TRANSCRIBE = "transcribe"
    NO_TIMESTAMPS = "no_timestamps"
    END_OF_TEXT = "end_of_text"
    START_OF_PREV = "start_of_prev"
    TIMESTAMP = "timestamp"


class Transcript:
    """A transcript produced by STT, with the tokens it was decoded from."""

    __slots__ = ("text", "tokens", "final")

    def __init__(self, text: str, tokens: list[int] | None = None, final: bool = False):
        self.text = text
        self.tokens = tokens if tokens is not None else []
        self.final = final


class SpeechModel(ABC):
    """Encoder-decoder acoustic model."""

    @abstractmethod
    def encode(self, spectrogram: torch.Tensor) -> torch.Tensor:
        """
        Encode a (n_mels, n_frames) spectrogram.

        Returns:
            Encoder representation with a leading batch dimension of 1
        """
        raise NotImplementedError

    @abstractmethod
    def decode(self, tokens: torch.Tensor, representation: torch.Tensor) -> torch.Tensor:
        """
        Score next tokens for a batch of sequences.

        Args:
            tokens: Integer tensor of shape (batch, seq_len)
            representation: Encoder output repeated to the same batch size

        Returns:
            Raw scores of shape (batch, seq_len, vocab_size)
        """
        raise NotImplementedError

    @abstractmethod
    def encoder_context_size(self) -> int:
        """Maximum number of mel frames the encoder accepts."""
        raise NotImplementedError

    @abstractmethod
    def decoder_context_size(self) -> int:
        raise NotImplementedError

    @abstractmethod
    def mel_channel_count(self) -> int:
        raise NotImplementedError


class Tokenizer(ABC):
    """Subword tokenizer with a table of special tokens."""

    @abstractmethod
    def special_token(self, kind: SpecialToken, language: str | None = None) -> int:
        """
        Resolve a special token.

        Raises:
            UnknownLanguage: ``kind`` is LANGUAGE and ``language`` is unsupported
            TokenizerError: the token does not exist for this tokenizer
        """
        raise NotImplementedError

    @abstractmethod
    def is_special(self, token: int) -> bool:
        raise NotImplementedError

    @abstractmethod
    def vocab_size(self) -> int:
        raise NotImplementedError

    @abstractmethod
    def decode(self, tokens: Sequence[int], skip_special: bool) -> str:
        raise NotImplementedError


class FeatureExtractor(ABC):
    """Turns waveform samples into a spectrogram."""

    @abstractmethod
    def to_spectrogram(self, samples: np.ndarray, sample_rate: int, n_mels: int) -> torch.Tensor:
        """
        Returns:
            Spectrogram of shape (n_mels, n_frames)
        """
        raise NotImplementedError


class SpeechToTextProvider(ABC):
    """Abstract base class for speech-to-text providers."""

    def __init__(self, settings: TranscriptionSettings):
        self.settings = settings

    @abstractmethod
    async def stream(self, audio_chunks: AsyncIterator[bytes]) -> AsyncIterator[Transcript]:
        """
        Convert audio chunks to transcripts.

        Args:
            audio_chunks: Async iterator of audio byte chunks

        Yields:
            Transcript objects with text, tokens and final flag
        """
        raise NotImplementedError
