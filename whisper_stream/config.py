from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TranscriptionSettings(BaseSettings):
    """Settings for streaming transcription."""

    model_config = SettingsConfigDict(
        env_file=".env.whisper",
        env_prefix="WHISPER_STREAM_"
    )

    # Providers
    stt_provider: Literal["whisper"] = Field(
        default="whisper", description="Speech-to-text provider (streaming Whisper)."
    )

    # Whisper model
    whisper_model: str = Field(
        default="base", description="Whisper model name ('tiny', 'base', 'small', 'medium', 'large')."
    )
    language: str = Field(
        default="en", description="Language code used for the language token (e.g., 'en', 'es', 'fr')."
    )
    device: str | None = Field(
        default=None, description="Torch device. None = cuda if available, else cpu."
    )

    # Audio
    sample_rate: int = Field(
        default=16000, gt=0, description="The only sample rate accepted for input audio."
    )
    chunk_overlap_seconds: float = Field(
        default=3.0, ge=0.0, description="Audio shared by consecutive windows, in seconds."
    )
    encoder_padding: int = Field(
        default=200,
        ge=0,
        description=(
            "Zero mel frames appended to every window. The window itself is shortened by the "
            "same amount; raise it if windows keep repeating themselves near the end."
        ),
    )

    # Beam search
    beam_size: int = Field(default=5, ge=1, description="Number of beams kept per decode step.")
    max_depth: int = Field(default=30, ge=1, description="Maximum decode steps per window.")
    masked_prefix_length: int = Field(
        default=5,
        ge=0,
        description="Special tokens are suppressed while the sequence is at most this long.",
    )

    # Stitching
    max_n_offsets: int = Field(
        default=40, ge=0, description="How many tail offsets are tried when aligning windows."
    )
    min_n_overlaps: int = Field(
        default=3, ge=1, description="Matching tokens required before two windows are merged."
    )

    # File system paths
    model_dir: Path | None = Field(
        default=None,
        description="Directory holding downloaded Whisper checkpoints. None = openai-whisper default.",
    )


def get_settings() -> TranscriptionSettings:
    """Get the transcription settings instance."""
    return TranscriptionSettings()
