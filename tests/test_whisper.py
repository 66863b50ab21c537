"""Tests for the openai-whisper backed collaborators and provider."""

import io

import numpy as np
import pytest
import soundfile as sf
import torch
from unittest.mock import patch
from whisper.model import ModelDimensions, Whisper

from conftest import ScriptedModel
from whisper_stream.config import TranscriptionSettings
from whisper_stream.errors import InvalidAudioFormat, TokenizerError, UnknownLanguage
from whisper_stream.pipeline import StreamingTranscriber
from whisper_stream.providers import create_stt_provider
from whisper_stream.stt.base import SpecialToken
from whisper_stream.stt.whisper import (
    StreamingWhisperProvider,
    WhisperFeatureExtractor,
    WhisperSpeechModel,
    WhisperTokenizer,
)


@pytest.fixture(scope="module")
def tiny_model():
    """Randomly initialised Whisper small enough to run on CPU."""
    torch.manual_seed(0)
    dims = ModelDimensions(
        n_mels=80,
        n_audio_ctx=10,
        n_audio_state=8,
        n_audio_head=2,
        n_audio_layer=1,
        n_vocab=51865,
        n_text_ctx=16,
        n_text_state=8,
        n_text_head=2,
        n_text_layer=1,
    )
    return WhisperSpeechModel(Whisper(dims).eval())


@pytest.fixture(scope="module")
def whisper_tokenizer():
    return WhisperTokenizer(multilingual=True, num_languages=99, n_vocab=51865)


class TestWhisperTokenizer:
    def test_prompt_tokens(self, whisper_tokenizer):
        sot = whisper_tokenizer.special_token(SpecialToken.START_OF_TRANSCRIPT)
        eot = whisper_tokenizer.special_token(SpecialToken.END_OF_TEXT)

        assert whisper_tokenizer.special_token(SpecialToken.LANGUAGE, "en") == sot + 1
        assert whisper_tokenizer.is_special(sot)
        assert whisper_tokenizer.is_special(eot)
        assert whisper_tokenizer.is_special(whisper_tokenizer.special_token(SpecialToken.NO_TIMESTAMPS))
        assert whisper_tokenizer.is_special(whisper_tokenizer.special_token(SpecialToken.TIMESTAMP))
        assert not whisper_tokenizer.is_special(eot - 1)

    def test_language_names_are_accepted(self, whisper_tokenizer):
        assert whisper_tokenizer.special_token(
            SpecialToken.LANGUAGE, "German"
        ) == whisper_tokenizer.special_token(SpecialToken.LANGUAGE, "de")

    def test_unknown_language(self, whisper_tokenizer):
        with pytest.raises(UnknownLanguage, match="Invalid language abbreviation: xx"):
            whisper_tokenizer.special_token(SpecialToken.LANGUAGE, "xx")

    def test_language_token_needs_language(self, whisper_tokenizer):
        with pytest.raises(TokenizerError):
            whisper_tokenizer.special_token(SpecialToken.LANGUAGE)

    def test_decode_skips_special_tokens(self, whisper_tokenizer):
        text_tokens = whisper_tokenizer._tokenizer.encode(" hello world")
        sot = whisper_tokenizer.special_token(SpecialToken.START_OF_TRANSCRIPT)
        eot = whisper_tokenizer.special_token(SpecialToken.END_OF_TEXT)

        assert whisper_tokenizer.decode([sot, *text_tokens, eot], skip_special=True) == " hello world"
        assert "<|endoftext|>" in whisper_tokenizer.decode([*text_tokens, eot], skip_special=False)

    def test_vocab_size_follows_model(self, whisper_tokenizer):
        assert whisper_tokenizer.vocab_size() == 51865


class TestWhisperFeatureExtractor:
    def test_frames_per_window(self):
        mel = WhisperFeatureExtractor().to_spectrogram(np.zeros(16000, dtype=np.float32), 16000, 80)

        assert tuple(mel.shape) == (80, 100)

    def test_short_input_is_zero_padded(self):
        mel = WhisperFeatureExtractor().to_spectrogram(np.zeros(100, dtype=np.float32), 16000, 80)

        assert mel.shape[0] == 80
        assert torch.isfinite(mel).all()

    def test_rejects_other_sample_rates(self):
        with pytest.raises(InvalidAudioFormat):
            WhisperFeatureExtractor().to_spectrogram(np.zeros(8000, dtype=np.float32), 8000, 80)


class TestWhisperSpeechModel:
    def test_context_sizes(self, tiny_model):
        assert tiny_model.encoder_context_size() == 20
        assert tiny_model.decoder_context_size() == 16
        assert tiny_model.mel_channel_count() == 80

    def test_encode_and_decode_shapes(self, tiny_model):
        encoded = tiny_model.encode(torch.zeros((80, 7)))
        tokens = torch.tensor([[50258, 50259, 50359], [50258, 50259, 50359]])

        logits = tiny_model.decode(tokens, encoded.repeat(2, 1, 1))

        assert tuple(encoded.shape) == (1, 10, 8)
        assert tuple(logits.shape) == (2, 3, 51865)

    def test_transcribes_with_random_weights(self, tiny_model, whisper_tokenizer):
        settings = TranscriptionSettings(
            _env_file=None,
            encoder_padding=5,
            chunk_overlap_seconds=0.05,
            beam_size=2,
            max_depth=3,
        )
        transcriber = StreamingTranscriber(
            tiny_model, whisper_tokenizer, WhisperFeatureExtractor(), settings
        )

        transcript = transcriber.transcribe(np.zeros(4000, dtype=np.float32), 16000)

        assert transcript.final
        assert isinstance(transcript.text, str)
        assert all(isinstance(token, int) for token in transcript.tokens)

    def test_tiny_final_window_is_transcribed(self, tiny_model, whisper_tokenizer):
        """A 100-sample trailing window still goes through the spectrogram."""
        settings = TranscriptionSettings(
            _env_file=None,
            encoder_padding=5,
            chunk_overlap_seconds=0.05,
            beam_size=2,
            max_depth=3,
        )
        feature_extractor = WhisperFeatureExtractor()
        transcriber = StreamingTranscriber(tiny_model, whisper_tokenizer, feature_extractor, settings)

        # Window of 2400 samples with a 1600 shift: [0, 1700) and [1600, 1700).
        transcript = transcriber.transcribe(np.zeros(1700, dtype=np.float32), 16000)

        assert transcript.final
        assert all(isinstance(token, int) for token in transcript.tokens)


class TestStreamingWhisperProvider:
    def test_factory(self):
        provider = create_stt_provider(TranscriptionSettings(_env_file=None))

        assert isinstance(provider, StreamingWhisperProvider)

    async def test_stream_yields_final_transcript(self, make_transcriber):
        transcriber = make_transcriber(ScriptedModel([[7, 8]]))
        provider = StreamingWhisperProvider(TranscriptionSettings(_env_file=None))

        buffer = io.BytesIO()
        sf.write(buffer, np.zeros(16000, dtype=np.float32), 16000, format="WAV")
        data = buffer.getvalue()

        async def chunks():
            yield data[:100]
            yield data[100:]

        with patch(
            "whisper_stream.stt.whisper.load_whisper_transcriber", return_value=transcriber
        ) as load:
            transcripts = [t async for t in provider.stream(chunks())]

        load.assert_called_once()
        assert len(transcripts) == 1
        assert transcripts[0].text == "w7 w8"
        assert transcripts[0].tokens == [7, 8]
        assert transcripts[0].final

    async def test_stream_without_audio_yields_nothing(self):
        provider = StreamingWhisperProvider(TranscriptionSettings(_env_file=None))

        async def chunks():
            yield b""

        assert [t async for t in provider.stream(chunks())] == []
