"""Exceptions raised while turning a waveform into text."""


class TranscriptionError(RuntimeError):
    """Base class for transcription failures."""


class InvalidAudioFormat(TranscriptionError):
    """Audio is not single-channel at the required sample rate, or unreadable."""


class UnknownLanguage(TranscriptionError):
    """Language code is not supported by the tokenizer."""

    def __init__(self, language: str):
        super().__init__(f"Invalid language abbreviation: {language}")
        self.language = language


class TokenizerError(TranscriptionError):
    """Special-token lookup or token decoding failed."""


class ModelInferenceError(TranscriptionError):
    """The encoder or decoder forward pass failed."""
