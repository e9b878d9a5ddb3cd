import argparse
import asyncio
import logging
import os
import queue
import signal
import sys
import time

from .capture import CaptureScheduler
from .encoding import to_data_url, write_image
from .errors import ScrollSnapError
from .models import init_db, record_capture
from .observers import MssScreenCapture, StopHotkey, get_virtual_bounds
from .schemas import CaptureComplete, CaptureOptions, Region


def parse_region(value: str) -> Region:
    try:
        x, y, width, height = (int(part) for part in value.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"Expected X,Y,WIDTH,HEIGHT, got {value!r}"
        ) from None
    if width <= 0 or height <= 0:
        raise argparse.ArgumentTypeError("Region width and height must be positive")
    return Region(x=x, y=y, width=width, height=height)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="scrollsnap - capture a screen region while you scroll and stitch it into one tall image"
    )

    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument(
        "--region",
        type=parse_region,
        help="Region to capture as X,Y,WIDTH,HEIGHT in physical pixels",
    )
    target.add_argument(
        "--display",
        type=int,
        help="Capture a whole display (1-based, see --list-displays)",
    )
    target.add_argument(
        "--list-displays",
        action="store_true",
        help="Print the available displays and exit",
    )

    parser.add_argument(
        "--output",
        "-o",
        default=None,
        help="Where to write the PNG (default: ./scrollsnap-<timestamp>.png)",
    )
    parser.add_argument(
        "--poll-interval",
        type=int,
        default=100,
        help="Milliseconds between two captures (default: 100)",
    )
    parser.add_argument(
        "--max-stitches",
        type=int,
        default=500,
        help="Stop after this many stitched frames (default: 500)",
    )
    parser.add_argument(
        "--static-timeout",
        type=int,
        default=None,
        help="Stop after N consecutive captures without new content",
    )
    parser.add_argument(
        "--inset",
        type=int,
        default=0,
        help="Trim N pixels from every side of the region (e.g. an overlay border)",
    )
    parser.add_argument(
        "--stop-key",
        action="append",
        default=None,
        help="Key that stops the capture; repeatable (default: esc and f9)",
    )
    parser.add_argument(
        "--no-hotkey",
        action="store_true",
        help="Do not install the global stop key listener",
    )
    parser.add_argument(
        "--history-db",
        default=None,
        help="Record finished captures in this SQLite file",
    )
    parser.add_argument(
        "--data-url",
        action="store_true",
        help="Also print the result as a data:image/png;base64 URL",
    )
    parser.add_argument(
        "--debug",
        "-d",
        action="store_true",
        help="Enable debug logging",
    )

    return parser.parse_args(argv)


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    )


async def _record(db_path: str, event: CaptureComplete, path: str) -> None:
    engine, Session = await init_db(
        os.path.basename(db_path), os.path.dirname(os.path.abspath(db_path))
    )
    try:
        await record_capture(Session, event, path)
    finally:
        await engine.dispose()


def _resolve_region(args, capture: MssScreenCapture) -> Region:
    displays = capture.enumerate_displays()
    if args.display is not None:
        if not 1 <= args.display <= len(displays):
            raise SystemExit(f"Display {args.display} not found ({len(displays)} available)")
        return displays[args.display - 1].region

    bounds = get_virtual_bounds(displays)
    region = args.region
    if (
        region.x + region.width <= bounds.x
        or region.y + region.height <= bounds.y
        or region.x >= bounds.x + bounds.width
        or region.y >= bounds.y + bounds.height
    ):
        raise SystemExit(f"Region {region} is outside the desktop {bounds}")
    return region


def main(argv=None) -> int:
    """Main entry point.

    Architecture:
    - Main thread: parses flags, waits for the session result, writes output
    - Capture worker thread: runs the scroll-capture loop
    - Listener thread (pynput): turns stop key presses into a stop request
    """
    args = parse_args(argv)
    _configure_logging(args.debug)

    capture = MssScreenCapture()

    if args.list_displays:
        for idx, display in enumerate(capture.enumerate_displays(), 1):
            print(
                f"{idx}: origin={display.origin} size={display.size[0]}x{display.size[1]}"
            )
        return 0

    region = _resolve_region(args, capture)
    try:
        options = CaptureOptions(
            poll_interval_ms=args.poll_interval,
            max_stitches=args.max_stitches,
            static_timeout_ticks=args.static_timeout,
            border_inset=args.inset,
        )
    except ValueError as exc:
        print(f"Invalid options: {exc}")
        return 2

    stop_keys = args.stop_key or list(StopHotkey.DEFAULT_KEYS)

    print("\n" + "=" * 70)
    print("SCROLL CAPTURE")
    print("=" * 70)
    print(f"\nRegion: ({region.x}, {region.y}) {region.width}x{region.height}")
    print("\nScroll the content under the region slowly and steadily.")
    if args.no_hotkey:
        print("Press Ctrl + C in the terminal to finish.")
    else:
        print(f"Press {' or '.join(k.upper() for k in stop_keys)} (or Ctrl + C) to finish.")
    print("\n" + "=" * 70 + "\n")

    events: "queue.Queue" = queue.Queue()
    scheduler = CaptureScheduler(capture)
    scheduler.add_listener(events.put)

    try:
        session_id = scheduler.start(region, options)
    except ScrollSnapError as exc:
        print(f"Could not start capture: {exc}")
        return 1

    hotkey = None
    if not args.no_hotkey:
        hotkey = StopHotkey(scheduler.stop_active, stop_keys)
        try:
            hotkey.start()
        except Exception as exc:
            logging.getLogger("Hotkey").warning(f"Stop key listener unavailable: {exc}")
            hotkey = None

    # Set up Ctrl+C handler
    def signal_handler(sig, frame):
        print("\n\nFinishing capture...")
        scheduler.stop_active()

    previous_handler = signal.signal(signal.SIGINT, signal_handler)

    try:
        # poll so the main thread stays responsive to SIGINT
        while True:
            try:
                event = events.get(timeout=0.2)
            except queue.Empty:
                continue
            if event.session_id == session_id:
                break
    finally:
        signal.signal(signal.SIGINT, previous_handler or signal.SIG_DFL)
        if hotkey is not None:
            hotkey.stop()
        scheduler.join(session_id, timeout=5)
        capture.close()

    if event.image_bytes is None:
        print(f"❌ Capture failed: {event.message}")
        return 1

    output = args.output or f"scrollsnap-{time.strftime('%Y%m%d-%H%M%S')}.png"
    path = write_image(output, event.image_bytes)

    if not isinstance(event, CaptureComplete):
        print(f"❌ Capture stopped early ({event.kind.value}): {event.message}")
        print(f"Partial image ({event.width}x{event.height}) saved to {path}")
        return 1

    print(
        f"✅ Saved {event.width}x{event.height} image to {path} "
        f"({event.stitch_count} stitches, {event.reason.value})"
    )

    if args.history_db:
        asyncio.run(_record(args.history_db, event, path))

    if args.data_url:
        print(to_data_url(event.image_bytes))

    return 0


if __name__ == "__main__":
    sys.exit(main())
