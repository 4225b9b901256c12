import argparse
import os
import sys
import time

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src"))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from ticketscribe.config import load_config
from ticketscribe.errors import TranscriptionBackendError
from ticketscribe.transcriber import Transcriber


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("audio_path", help="Path to audio file to transcribe.")
    parser.add_argument("--local", action="store_true", help="Use WHISPER_API_URL.")
    parser.add_argument("--language", help="Language code (e.g., en).")
    parser.add_argument("--config", help="YAML settings file.")
    args = parser.parse_args()

    config = load_config(args.config, local=args.local)
    transcriber = Transcriber(config.transcription, language=args.language or config.language)

    def _progress_cb(done: int, total: int) -> None:
        print(f"Chunk {done}/{total}")

    started = time.time()
    try:
        text = transcriber.transcribe(args.audio_path, progress_cb=_progress_cb)
    except TranscriptionBackendError as exc:
        print(f"Transcription failed: {exc}")
        return 1
    elapsed = time.time() - started
    if text is None:
        print("No speech: file missing or too small.")
    else:
        print(text)
        print(f"Characters: {len(text)}")
    print(f"Elapsed: {elapsed:.2f}s")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
