"""
Shared fakes for the transcription tests.

The fakes stand in for the Whisper collaborators so the orchestrator can be
driven without model weights: a tiny vocabulary of 60 tokens where ids 50-59
are special, and a model that emits a scripted token sequence per window.
"""

import pytest
import torch

from whisper_stream.config import TranscriptionSettings
from whisper_stream.errors import UnknownLanguage
from whisper_stream.pipeline import StreamingTranscriber
from whisper_stream.stt.base import (
    FeatureExtractor,
    SpecialToken,
    SpeechModel,
    Tokenizer,
)
from whisper_stream.windowing import HOP_LENGTH

VOCAB_SIZE = 60
SOT, EOT, TRANSCRIBE, NO_TIMESTAMPS, SOT_PREV, TIMESTAMP = 50, 51, 52, 53, 54, 55
LANGUAGE_TOKENS = {"en": 56, "de": 57}
PROMPT = [SOT, LANGUAGE_TOKENS["en"], TRANSCRIBE, NO_TIMESTAMPS]

# Preferred ordinary token whenever the scripted target is masked out.
FILLER = 49


class FakeTokenizer(Tokenizer):
    def special_token(self, kind, language=None):
        if kind == SpecialToken.LANGUAGE:
            if language not in LANGUAGE_TOKENS:
                raise UnknownLanguage(language)
            return LANGUAGE_TOKENS[language]
        return {
            SpecialToken.START_OF_TRANSCRIPT: SOT,
            SpecialToken.END_OF_TEXT: EOT,
            SpecialToken.TRANSCRIBE: TRANSCRIBE,
            SpecialToken.NO_TIMESTAMPS: NO_TIMESTAMPS,
            SpecialToken.START_OF_PREV: SOT_PREV,
            SpecialToken.TIMESTAMP: TIMESTAMP,
        }[kind]

    def is_special(self, token):
        return token >= 50

    def vocab_size(self):
        return VOCAB_SIZE

    def decode(self, tokens, skip_special):
        words = []
        for token in tokens:
            if self.is_special(token):
                if not skip_special:
                    words.append(f"<{token}>")
            else:
                words.append(f"w{token}")
        return " ".join(words)


class FakeFeatureExtractor(FeatureExtractor):
    def __init__(self):
        self.window_lengths = []

    def to_spectrogram(self, samples, sample_rate, n_mels):
        self.window_lengths.append(len(samples))
        return torch.zeros((n_mels, len(samples) // HOP_LENGTH))


class ScriptedModel(SpeechModel):
    """Emits ``scripts[i]`` followed by end-of-text for the i-th encoded window."""

    def __init__(self, scripts, encoder_ctx=3000, decoder_ctx=448, n_mels=80):
        self.scripts = list(scripts)
        self.encoder_ctx = encoder_ctx
        self.decoder_ctx = decoder_ctx
        self.n_mels = n_mels
        self.encoded_shapes = []
        self.batch_sizes = []

    def encode(self, spectrogram):
        self.encoded_shapes.append(tuple(spectrogram.shape))
        return torch.zeros((1, 2, 4))

    def decode(self, tokens, representation):
        batch, seq_len = tokens.shape
        assert representation.shape[0] == batch
        self.batch_sizes.append(batch)

        script = self.scripts[len(self.encoded_shapes) - 1]
        step = seq_len - len(PROMPT)
        target = script[step] if step < len(script) else EOT

        logits = torch.zeros((batch, seq_len, VOCAB_SIZE))
        logits[:, :, FILLER] = 5.0
        logits[:, seq_len - 1, target] = 10.0
        return logits

    def encoder_context_size(self):
        return self.encoder_ctx

    def decoder_context_size(self):
        return self.decoder_ctx

    def mel_channel_count(self):
        return self.n_mels


@pytest.fixture
def settings():
    return TranscriptionSettings(_env_file=None)


@pytest.fixture
def tokenizer():
    return FakeTokenizer()


@pytest.fixture
def feature_extractor():
    return FakeFeatureExtractor()


@pytest.fixture
def make_transcriber(tokenizer, feature_extractor, settings):
    def _make(model, **overrides):
        return StreamingTranscriber(
            model, tokenizer, feature_extractor, settings.model_copy(update=overrides)
        )

    return _make
