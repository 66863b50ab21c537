from whisper_stream.config import TranscriptionSettings
from whisper_stream.pipeline import StreamingTranscriber
from whisper_stream.stt.base import SpeechToTextProvider
from whisper_stream.stt.whisper import StreamingWhisperProvider, load_whisper_transcriber


def create_stt_provider(settings: TranscriptionSettings) -> SpeechToTextProvider:
    """Create an STT provider based on configuration."""
    if settings.stt_provider == "whisper":
        return StreamingWhisperProvider(settings)
    else:
        raise ValueError(f"Unknown STT provider: {settings.stt_provider}. Supported: 'whisper'")


def create_transcriber(settings: TranscriptionSettings) -> StreamingTranscriber:
    """Load the model behind the configured provider and return a ready transcriber."""
    if settings.stt_provider == "whisper":
        return load_whisper_transcriber(settings)
    else:
        raise ValueError(f"Unknown STT provider: {settings.stt_provider}. Supported: 'whisper'")
