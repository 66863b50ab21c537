"""Command line transcription of a WAV file."""

import argparse
import logging
import sys
from pathlib import Path

from whisper_stream.audio import load_waveform
from whisper_stream.config import get_settings
from whisper_stream.errors import TranscriptionError, UnknownLanguage
from whisper_stream.providers import create_transcriber
from whisper_stream.stt.whisper import WhisperTokenizer

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="whisper-stream",
        description="Transcribe long audio with overlapping Whisper windows.",
    )
    parser.add_argument("model", help="Whisper model name (e.g. tiny, base, small)")
    parser.add_argument("audio", type=Path, help="Mono 16 kHz audio file")
    parser.add_argument("lang", help="Language code (e.g. en, de, fr)")
    parser.add_argument("output", type=Path, help="Where to write the transcription")
    parser.add_argument("--beam-size", type=int, help="Beams kept per decode step")
    parser.add_argument("--max-depth", type=int, help="Maximum decode steps per window")
    parser.add_argument("--device", help="Torch device (default: cuda if available)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every window")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    # Fail on a bad language before spending time on the model.
    try:
        language = WhisperTokenizer.language_code(args.lang)
    except UnknownLanguage as e:
        print(e, file=sys.stderr)
        return 1

    overrides = {"whisper_model": args.model, "language": language}
    if args.beam_size is not None:
        overrides["beam_size"] = args.beam_size
    if args.max_depth is not None:
        overrides["max_depth"] = args.max_depth
    if args.device is not None:
        overrides["device"] = args.device
    settings = get_settings().model_copy(update=overrides)

    logger.info("Loading waveform...")
    try:
        waveform, sample_rate = load_waveform(args.audio, settings.sample_rate)
    except (TranscriptionError, OSError) as e:
        print(f"Failed to load audio file: {e}", file=sys.stderr)
        return 1

    try:
        transcriber = create_transcriber(settings)
    except (RuntimeError, OSError) as e:
        print(f"Failed to load whisper model: {e}", file=sys.stderr)
        return 1

    try:
        transcript = transcriber.transcribe(waveform, sample_rate, language=language)
    except TranscriptionError as e:
        print(f"Error during transcription: {e}", file=sys.stderr)
        return 1

    try:
        args.output.write_text(transcript.text, encoding="utf-8")
    except OSError as e:
        print(f"Error writing transcription file: {e}", file=sys.stderr)
        return 1

    logger.info("Transcription finished.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
