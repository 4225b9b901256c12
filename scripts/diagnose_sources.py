import argparse
import os
import sys
import time

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src"))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from ticketscribe.errors import AudioSetupError
from ticketscribe.recorder import (
    RecordingSession,
    detect_sources,
    list_source_names,
)


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("--seconds", type=float, default=0.0, help="Test recording length.")
    args = parser.parse_args()

    try:
        sources = detect_sources()
    except AudioSetupError as exc:
        print(f"Audio setup failed: {exc}")
        return 1

    print("PulseAudio sources:")
    for name in list_source_names():
        print(f"  {name}")
    print(sources.describe())
    if args.seconds <= 0:
        return 0

    session = RecordingSession(sources=sources)
    session.start()
    print(f"Recording {args.seconds:.0f}s test clip... press Ctrl+C to stop early.")
    end = time.time() + args.seconds
    try:
        while time.time() < end:
            sizes = " | ".join(
                f"{stream.value}: {session.file_size_mb(stream)} MB" for stream in session.streams
            )
            print(f"{session.elapsed():>3}s  {sizes}")
            time.sleep(1.0)
    except KeyboardInterrupt:
        pass
    finally:
        session.stop()

    for stream in session.streams:
        status = "empty" if session.is_empty(stream) else "ok"
        print(f"{stream.label}: {session.file_size_mb(stream)} MB ({status})")
        diagnostic = session.last_capture_diagnostic(stream)
        if status == "empty" and diagnostic:
            print(f"  ffmpeg: {diagnostic}")
    session.cleanup()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
