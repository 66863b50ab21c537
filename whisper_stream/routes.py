"""HTTP REST endpoints for transcription."""

import logging
from functools import lru_cache

from fastapi import APIRouter, File, HTTPException, UploadFile

from whisper_stream.config import get_settings
from whisper_stream.errors import InvalidAudioFormat, UnknownLanguage
from whisper_stream.providers import create_stt_provider
from whisper_stream.stt.base import SpeechToTextProvider

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["stt"])

AUDIO_EXTENSIONS = (".wav", ".flac", ".ogg")


@lru_cache(maxsize=1)
def get_stt_provider() -> SpeechToTextProvider:
    """Shared provider so the model is loaded once per process."""
    return create_stt_provider(get_settings())


@router.post("/stt")
async def transcribe_audio(file: UploadFile = File(...)):
    """
    Transcribe an audio file to text.

    Accepts a mono 16 kHz audio file and returns JSON with the transcript
    and the tokens it was decoded from.
    """
    # Check content type or filename extension
    content_type = file.content_type or ""
    filename = file.filename or ""
    if not (content_type.startswith("audio/") or filename.lower().endswith(AUDIO_EXTENSIONS)):
        raise HTTPException(status_code=400, detail="File must be an audio file")

    audio_data = await file.read()
    if not audio_data:
        raise HTTPException(status_code=400, detail="Empty audio file")

    async def audio_chunks():
        yield audio_data

    try:
        stt_provider = get_stt_provider()
        transcripts = [t async for t in stt_provider.stream(audio_chunks()) if t.final]
    except (InvalidAudioFormat, UnknownLanguage) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error transcribing {filename or 'upload'}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"STT error: {str(e)}")

    if not transcripts:
        raise HTTPException(status_code=500, detail="No transcript generated")

    return {
        "text": " ".join(t.text for t in transcripts),
        "tokens": [token for t in transcripts for token in t.tokens],
        "final": True,
    }
