"""Orchestration of windowing → encoding → beam search → stitching."""

import logging
from collections.abc import Sequence

import numpy as np
import torch
import torch.nn.functional as F

from whisper_stream.beam import BeamNode, beam_search
from whisper_stream.config import TranscriptionSettings
from whisper_stream.masking import apply_special_token_mask, build_special_token_mask
from whisper_stream.stitching import merge_tokens
from whisper_stream.stt.base import (
    FeatureExtractor,
    SpecialToken,
    SpeechModel,
    Tokenizer,
    Transcript,
)
from whisper_stream.windowing import iter_windows, max_waveform_samples

logger = logging.getLogger(__name__)


class DecodePrompt:
    """Special tokens resolved once per transcription."""

    __slots__ = ("start", "language", "transcribe", "no_timestamps", "end")

    def __init__(self, start: int, language: int, transcribe: int, no_timestamps: int, end: int):
        self.start = start
        self.language = language
        self.transcribe = transcribe
        self.no_timestamps = no_timestamps
        self.end = end

    @classmethod
    def resolve(cls, tokenizer: Tokenizer, language: str) -> "DecodePrompt":
        return cls(
            start=tokenizer.special_token(SpecialToken.START_OF_TRANSCRIPT),
            language=tokenizer.special_token(SpecialToken.LANGUAGE, language),
            transcribe=tokenizer.special_token(SpecialToken.TRANSCRIBE),
            no_timestamps=tokenizer.special_token(SpecialToken.NO_TIMESTAMPS),
            end=tokenizer.special_token(SpecialToken.END_OF_TEXT),
        )

    @property
    def tokens(self) -> list[int]:
        return [self.start, self.language, self.transcribe, self.no_timestamps]


class StreamingTranscriber:
    """Transcribes arbitrarily long audio with a fixed-context encoder-decoder model."""

    def __init__(
        self,
        model: SpeechModel,
        tokenizer: Tokenizer,
        feature_extractor: FeatureExtractor,
        settings: TranscriptionSettings | None = None,
    ):
        self.model = model
        self.tokenizer = tokenizer
        self.feature_extractor = feature_extractor
        self.settings = settings or TranscriptionSettings()

    def window_length(self) -> int:
        """
        Waveform samples per window.

        The encoder context is shortened by ``encoder_padding`` frames. Whisper
        tends to repeat itself at the end of a full-length window, and the
        trailing silence cues it to end the utterance instead.
        """
        n_frames = self.model.encoder_context_size() - self.settings.encoder_padding
        return max_waveform_samples(n_frames)

    def transcribe(
        self, waveform: np.ndarray, sample_rate: int, language: str | None = None
    ) -> Transcript:
        """
        Transcribe a mono waveform.

        Every window is decoded independently and merged into the running
        token sequence; the text is re-decoded from the full sequence after
        each window. Any collaborator failure aborts the whole call.

        Returns:
            Final Transcript with text and tokens
        """
        language = language or self.settings.language
        prompt = DecodePrompt.resolve(self.tokenizer, language)
        mask = torch.from_numpy(
            build_special_token_mask(self.tokenizer.vocab_size(), self.tokenizer.is_special)
        )

        text = ""
        tokens: list[int] = []
        n_windows = 0
        for window in iter_windows(
            waveform,
            sample_rate,
            self.window_length(),
            overlap_seconds=self.settings.chunk_overlap_seconds,
        ):
            n_windows += 1
            mel = self.feature_extractor.to_spectrogram(
                window.samples, sample_rate, self.model.mel_channel_count()
            )
            new_tokens = self.decode_window(mel, prompt, mask)
            logger.debug(
                f"Window {window.index} [{window.start}, {window.end}) decoded to {len(new_tokens)} tokens"
            )

            tokens = merge_tokens(
                tokens,
                new_tokens,
                max_n_offsets=self.settings.max_n_offsets,
                min_n_overlaps=self.settings.min_n_overlaps,
            )
            text = self.tokenizer.decode(tokens, skip_special=True)

        logger.info(f"Transcribed {n_windows} windows into {len(tokens)} tokens")
        return Transcript(text=text, tokens=tokens, final=True)

    def decode_window(self, mel: torch.Tensor, prompt: DecodePrompt, mask: torch.Tensor) -> list[int]:
        """
        Beam search one window's spectrogram.

        Returns:
            The winning sequence without the prompt and without a trailing
            end-of-text token
        """
        n_ctx_max_encoder = self.model.encoder_context_size()
        padding = self.settings.encoder_padding

        n_mel, n_ctx = mel.shape[-2], mel.shape[-1]
        if n_ctx + padding > n_ctx_max_encoder:
            logger.warning(
                f"Audio has length of {n_ctx + padding} which exceeds maximum length "
                f"{n_ctx_max_encoder}. It will be clipped."
            )

        # the zero padding helps the decoder find the end of text
        mel = torch.cat(
            [
                mel[..., : min(n_ctx, n_ctx_max_encoder - padding)],
                torch.zeros((n_mel, padding), dtype=mel.dtype, device=mel.device),
            ],
            dim=-1,
        )
        encoder_output = self.model.encode(mel)
        mask = mask.to(encoder_output.device)

        def beamsearch_next(beams: Sequence[BeamNode[int]]) -> list[dict[int, float]]:
            max_seq_len = max(len(beam.seq) for beam in beams)
            token_batch = torch.zeros(
                (len(beams), max_seq_len), dtype=torch.long, device=encoder_output.device
            )
            for i, beam in enumerate(beams):
                token_batch[i, : len(beam.seq)] = torch.tensor(beam.seq, dtype=torch.long)

            logits = self.model.decode(token_batch, encoder_output.repeat(len(beams), 1, 1))
            logits = apply_special_token_mask(
                logits.float(), mask, max_seq_len, self.settings.masked_prefix_length
            )
            log_probs = F.log_softmax(logits, dim=-1)

            last = torch.stack([log_probs[i, len(beam.seq) - 1] for i, beam in enumerate(beams)])
            k = min(self.settings.beam_size, last.shape[-1])
            # Stable sort so equal scores keep the lowest token id first.
            sorted_log_probs, sorted_tokens = torch.sort(last, dim=-1, descending=True, stable=True)
            top_log_probs, top_tokens = sorted_log_probs[:, :k], sorted_tokens[:, :k]

            return [
                dict(zip(row_tokens.tolist(), row_log_probs.tolist()))
                for row_tokens, row_log_probs in zip(top_tokens.cpu(), top_log_probs.cpu())
            ]

        def beamsearch_is_finished(seq: Sequence[int]) -> bool:
            return bool(seq) and seq[-1] == prompt.end

        initial = prompt.tokens
        max_depth = min(
            self.settings.max_depth, self.model.decoder_context_size() - len(initial)
        )
        seq = beam_search(
            [BeamNode(seq=initial, log_prob=0.0)],
            beamsearch_next,
            beamsearch_is_finished,
            beam_size=self.settings.beam_size,
            max_depth=max_depth,
        )

        content = seq[len(initial):]
        if content and content[-1] == prompt.end:
            content = content[:-1]
        return content


def waveform_to_text(
    model: SpeechModel,
    tokenizer: Tokenizer,
    feature_extractor: FeatureExtractor,
    language: str,
    waveform: np.ndarray,
    sample_rate: int,
    settings: TranscriptionSettings | None = None,
) -> tuple[str, list[int]]:
    """Transcribe ``waveform`` and return ``(text, tokens)``."""
    transcriber = StreamingTranscriber(model, tokenizer, feature_extractor, settings)
    transcript = transcriber.transcribe(waveform, sample_rate, language=language)
    return transcript.text, transcript.tokens
