from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Sequence

from device.capture import Camera, FileImageSource, StubCamera
from wastesort.api.client import WasteSortClientError, WasteSortHttpClient


def parse_color(value: str) -> tuple[int, int, int]:
    parts = value.split(",")
    if len(parts) != 3:
        raise argparse.ArgumentTypeError("color must be R,G,B")
    try:
        rgb = tuple(int(part) for part in parts)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("color must be numeric") from exc
    if any(channel < 0 or channel > 255 for channel in rgb):
        raise argparse.ArgumentTypeError("color channels must be 0-255")
    return rgb  # type: ignore[return-value]


def build_source(args: argparse.Namespace) -> Camera:
    if args.image:
        return FileImageSource(Path(args.image))
    return StubCamera(color=args.color)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Submit a waste photo to the WasteSort API and print the result"
    )
    parser.add_argument(
        "--api",
        default="http://127.0.0.1:8000",
        help="WasteSort API base URL",
    )
    parser.add_argument(
        "--image",
        default=None,
        help="Image file to upload; omit to send a stub camera frame",
    )
    parser.add_argument(
        "--color",
        type=parse_color,
        default=(120, 160, 90),
        help="Stub camera colour as R,G,B (default: 120,160,90)",
    )
    parser.add_argument("--user", default=None, help="User id to credit with points")
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="HTTP timeout in seconds",
    )
    parser.add_argument(
        "--balance",
        action="store_true",
        help="Print the user's balance after submitting",
    )
    parser.add_argument(
        "--history",
        type=int,
        default=0,
        metavar="N",
        help="Print the user's N most recent points entries after submitting",
    )
    return parser


def run(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if (args.balance or args.history) and not args.user:
        parser.error("--balance and --history require --user")

    client = WasteSortHttpClient(base_url=args.api, timeout=args.timeout)
    source = build_source(args)
    try:
        frame = source.capture()
        result = client.submit(frame, user_id=args.user)
        print(json.dumps(result, indent=2, sort_keys=True))
        if args.balance:
            print(json.dumps(client.balance(args.user), indent=2, sort_keys=True))
        if args.history:
            history = client.history(args.user, limit=args.history)
            print(json.dumps(history, indent=2, sort_keys=True))
    except (OSError, WasteSortClientError) as exc:
        print(f"[device] Submission failed: {exc}")
        return 1
    finally:
        source.release()
    return 0


def main() -> None:
    raise SystemExit(run())


if __name__ == "__main__":
    main()
