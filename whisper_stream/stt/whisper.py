"""Whisper collaborators and STT provider built on openai-whisper."""

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence

import numpy as np
import torch
import whisper
from whisper.audio import N_FFT, SAMPLE_RATE, log_mel_spectrogram, pad_or_trim
from whisper.tokenizer import LANGUAGES, TO_LANGUAGE_CODE, get_tokenizer

from whisper_stream.audio import load_waveform_bytes
from whisper_stream.config import TranscriptionSettings
from whisper_stream.errors import (
    InvalidAudioFormat,
    ModelInferenceError,
    TokenizerError,
    UnknownLanguage,
)
from whisper_stream.pipeline import StreamingTranscriber
from whisper_stream.stt.base import (
    FeatureExtractor,
    SpecialToken,
    SpeechModel,
    SpeechToTextProvider,
    Tokenizer,
    Transcript,
)

logger = logging.getLogger(__name__)


def default_device() -> str:
    return "cuda" if torch.cuda.is_available() else "cpu"


class WhisperSpeechModel(SpeechModel):
    """Encoder/decoder forward passes of a loaded Whisper model."""

    def __init__(self, model: "whisper.model.Whisper"):
        self._model = model

    @classmethod
    def load(cls, name: str, device: str | None = None, download_root: str | None = None):
        device = device or default_device()
        logger.info(f"Loading Whisper model: {name}")
        model = whisper.load_model(name, device=device, download_root=download_root)
        model.eval()
        logger.info(f"Whisper model loaded on {device}")
        return cls(model)

    @property
    def device(self) -> torch.device:
        return self._model.device

    @property
    def is_multilingual(self) -> bool:
        return self._model.is_multilingual

    @property
    def num_languages(self) -> int:
        return self._model.num_languages

    @property
    def n_vocab(self) -> int:
        return self._model.dims.n_vocab

    def encode(self, spectrogram: torch.Tensor) -> torch.Tensor:
        # The encoder only takes full-length input; the caller's padding comes first.
        mel = pad_or_trim(spectrogram, self.encoder_context_size())
        mel = mel.unsqueeze(0).to(device=self._model.device, dtype=self._dtype())
        try:
            with torch.no_grad():
                return self._model.embed_audio(mel)
        except RuntimeError as e:
            raise ModelInferenceError(f"Whisper encoder failed: {e}") from e

    def decode(self, tokens: torch.Tensor, representation: torch.Tensor) -> torch.Tensor:
        try:
            with torch.no_grad():
                return self._model.logits(tokens.to(self._model.device), representation)
        except RuntimeError as e:
            raise ModelInferenceError(f"Whisper decoder failed: {e}") from e

    def encoder_context_size(self) -> int:
        # The second convolution halves the number of mel frames.
        return self._model.dims.n_audio_ctx * 2

    def decoder_context_size(self) -> int:
        return self._model.dims.n_text_ctx

    def mel_channel_count(self) -> int:
        return self._model.dims.n_mels

    def _dtype(self) -> torch.dtype:
        return next(self._model.parameters()).dtype


class WhisperTokenizer(Tokenizer):
    """Special-token table and text decoding of the Whisper BPE tokenizer."""

    def __init__(self, multilingual: bool = True, num_languages: int = 99, n_vocab: int | None = None):
        self._tokenizer = get_tokenizer(
            multilingual, num_languages=num_languages, task="transcribe"
        )
        self._n_vocab = n_vocab

    @classmethod
    def for_model(cls, model: WhisperSpeechModel) -> "WhisperTokenizer":
        return cls(model.is_multilingual, model.num_languages, n_vocab=model.n_vocab)

    @staticmethod
    def language_code(language: str) -> str:
        code = language.lower()
        code = TO_LANGUAGE_CODE.get(code, code)
        if code not in LANGUAGES:
            raise UnknownLanguage(language)
        return code

    def special_token(self, kind: SpecialToken, language: str | None = None) -> int:
        tok = self._tokenizer
        if kind == SpecialToken.LANGUAGE:
            if language is None:
                raise TokenizerError("A language is required to resolve the language token")
            code = self.language_code(language)
            try:
                return tok.to_language_token(code)
            except KeyError as e:
                raise TokenizerError(f"Language {code} has no token in this tokenizer") from e

        lookup = {
            SpecialToken.START_OF_TRANSCRIPT: lambda: tok.sot,
            SpecialToken.TRANSCRIBE: lambda: tok.transcribe,
            SpecialToken.NO_TIMESTAMPS: lambda: tok.no_timestamps,
            SpecialToken.END_OF_TEXT: lambda: tok.eot,
            SpecialToken.START_OF_PREV: lambda: tok.sot_prev,
            SpecialToken.TIMESTAMP: lambda: tok.timestamp_begin,
        }
        try:
            return lookup[kind]()
        except KeyError as e:
            raise TokenizerError(f"Unknown special token: {kind}") from e

    def is_special(self, token: int) -> bool:
        return token >= self._tokenizer.eot

    def vocab_size(self) -> int:
        if self._n_vocab is not None:
            return self._n_vocab
        return self._tokenizer.encoding.n_vocab

    def decode(self, tokens: Sequence[int], skip_special: bool) -> str:
        if skip_special:
            tokens = [t for t in tokens if not self.is_special(t)]
        try:
            return self._tokenizer.encoding.decode(list(tokens))
        except (KeyError, ValueError) as e:
            raise TokenizerError(f"Failed to decode {len(tokens)} tokens: {e}") from e


class WhisperFeatureExtractor(FeatureExtractor):
    """Log-mel spectrogram as computed by openai-whisper."""

    def __init__(self, device: str | torch.device | None = None):
        self.device = device

    def to_spectrogram(self, samples: np.ndarray, sample_rate: int, n_mels: int) -> torch.Tensor:
        if sample_rate != SAMPLE_RATE:
            raise InvalidAudioFormat(
                f"The audio sample rate must be {SAMPLE_RATE // 1000}k, got {sample_rate} Hz."
            )
        samples = np.ascontiguousarray(samples, dtype=np.float32)
        # The STFT reflect-pads by N_FFT // 2 and needs more samples than that.
        samples = np.pad(samples, (0, max(0, N_FFT - len(samples))))
        audio = torch.from_numpy(samples)
        try:
            return log_mel_spectrogram(audio, n_mels=n_mels, device=self.device)
        except RuntimeError as e:
            raise ModelInferenceError(f"Spectrogram computation failed: {e}") from e


def load_whisper_transcriber(settings: TranscriptionSettings) -> StreamingTranscriber:
    """Load model weights once and wire the Whisper collaborators together."""
    model = WhisperSpeechModel.load(
        settings.whisper_model,
        device=settings.device,
        download_root=str(settings.model_dir) if settings.model_dir else None,
    )
    return StreamingTranscriber(
        model,
        WhisperTokenizer.for_model(model),
        WhisperFeatureExtractor(device=model.device),
        settings,
    )


class StreamingWhisperProvider(SpeechToTextProvider):
    """Local Whisper model transcribing long audio window by window."""

    def __init__(self, settings):
        super().__init__(settings)
        self._transcriber: StreamingTranscriber | None = None

    def _load_transcriber(self) -> StreamingTranscriber:
        """Lazy load Whisper model on first use."""
        if self._transcriber is None:
            self._transcriber = load_whisper_transcriber(self.settings)
        return self._transcriber

    async def stream(
        self, audio_chunks: AsyncIterator[bytes]
    ) -> AsyncIterator[Transcript]:
        """
        Convert audio chunks to a transcript.

        Collects all audio chunks and transcribes them as one waveform.
        Yields a single final transcript.
        """
        audio_bytes = bytearray()
        async for chunk in audio_chunks:
            if chunk:
                audio_bytes.extend(chunk)

        if not audio_bytes:
            return

        waveform, sample_rate = load_waveform_bytes(bytes(audio_bytes), self.settings.sample_rate)
        logger.debug(f"Transcribing {len(waveform)} samples at {sample_rate}Hz")

        transcriber = await asyncio.to_thread(self._load_transcriber)
        transcript = await asyncio.to_thread(
            transcriber.transcribe, waveform, sample_rate, self.settings.language
        )
        if transcript.text:
            logger.info(f"WHISPER STT RESULT: '{transcript.text[:100]}'")
        else:
            logger.warning("Whisper STT returned empty text")
        yield transcript
