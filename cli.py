"""Backdrop command line.

Usage:
    backdrop optimize photo.heic                       # Writes photo-desktop.webp, photo-mobile.webp
    backdrop optimize photo.jpg --out-dir out --mobile-width 640
    backdrop optimize photo.jpg --json                 # Report as JSON on stdout
    backdrop history                                   # Recent conversions
    backdrop clear-history
"""

import argparse
import asyncio
import json
import sys
from datetime import datetime
from pathlib import Path

from exceptions import BackdropError
from schemas import OptimizationOverrides, RawInput, VariantOverride
from session.controller import OptimizerSession, Status
from storage.history import HistoryLog
from storage.kv import KeyValueStore, build_store
from utils.format import format_bytes, format_duration
from utils.logging import setup_logging


def _build_overrides(args) -> OptimizationOverrides:
    return OptimizationOverrides(
        desktop=VariantOverride(width=args.desktop_width, quality=args.desktop_quality),
        mobile=VariantOverride(width=args.mobile_width, quality=args.mobile_quality),
    )


async def _optimize(args, store: KeyValueStore) -> int:
    try:
        raw = RawInput.from_path(args.path, media_type=args.media_type)
    except OSError as e:
        print(f"Error: cannot read {args.path}: {e.strerror or e}", file=sys.stderr)
        return 1

    session = await OptimizerSession.create(store=store)
    try:
        await session.handle_file_selection(raw, _build_overrides(args))

        if session.status is Status.ERROR:
            print(f"Error: {session.error_message}", file=sys.stderr)
            return 1

        report = session.report
        out_dir = Path(args.out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        stem = Path(raw.name).stem
        written = {}
        for kind, variant in (("desktop", report.desktop), ("mobile", report.mobile)):
            out_path = out_dir / f"{stem}-{kind}.webp"
            out_path.write_bytes(variant.encoded_bytes)
            written[kind] = out_path

        if args.json:
            payload = report.model_dump(exclude={"desktop": {"encoded_bytes"}, "mobile": {"encoded_bytes"}})
            payload["files"] = {kind: str(p) for kind, p in written.items()}
            print(json.dumps(payload, indent=2))
        else:
            original = report.original
            print(f"{original.name}: {original.width}x{original.height}, {format_bytes(original.size)}")
            for kind, variant in (("desktop", report.desktop), ("mobile", report.mobile)):
                print(
                    f"  {kind:<8} {variant.width}x{variant.height}  "
                    f"q={variant.quality:.2f}  {format_bytes(variant.size):>10}  -> {written[kind]}"
                )
            print(f"  done in {format_duration(report.elapsed_ms)}")
        return 0
    finally:
        session.close()


async def _history(args, store: KeyValueStore) -> int:
    history = await HistoryLog.load(store)
    if args.json:
        print(history.dumps())
        return 0

    if not len(history):
        print("No conversions recorded.")
        return 0

    for entry in history.entries:
        when = datetime.fromtimestamp(entry.timestamp / 1000).strftime("%Y-%m-%d %H:%M:%S")
        print(
            f"{when}  {entry.file_name}  {format_bytes(entry.file_size)} -> "
            f"desktop {format_bytes(entry.desktop_size)}, mobile {format_bytes(entry.mobile_size)} "
            f"({format_duration(entry.elapsed_ms)})"
        )
    return 0


async def _clear_history(args, store: KeyValueStore) -> int:
    history = await HistoryLog.load(store)
    await history.clear()
    print("History cleared.")
    return 0


async def _run(args) -> int:
    store = build_store(args.history_backend)
    try:
        return await args.handler(args, store)
    finally:
        await store.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="backdrop",
        description="Turn a photo into desktop and mobile WebP backgrounds.",
    )
    parser.add_argument("--log-level", default=None, help="Override BACKDROP_LOG_LEVEL")
    parser.add_argument(
        "--history-backend",
        choices=["memory", "file", "redis"],
        default=None,
        help="Override BACKDROP_HISTORY_BACKEND",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    opt = sub.add_parser("optimize", help="Create desktop and mobile variants")
    opt.add_argument("path", help="Input image (JPEG, PNG, WebP, HEIC, ...)")
    opt.add_argument("--out-dir", default=".", help="Output directory (default: cwd)")
    opt.add_argument("--media-type", default=None, help="Declared media type (default: guessed)")
    opt.add_argument("--desktop-width", type=int, default=None)
    opt.add_argument("--desktop-quality", type=float, default=None)
    opt.add_argument("--mobile-width", type=int, default=None)
    opt.add_argument("--mobile-quality", type=float, default=None)
    opt.add_argument("--json", action="store_true", help="Print the report as JSON")
    opt.set_defaults(handler=_optimize)

    hist = sub.add_parser("history", help="Show recent conversions")
    hist.add_argument("--json", action="store_true", help="Print raw history JSON")
    hist.set_defaults(handler=_history)

    clear = sub.add_parser("clear-history", help="Forget all recorded conversions")
    clear.set_defaults(handler=_clear_history)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    try:
        return asyncio.run(_run(args))
    except BackdropError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    except ValueError as e:
        # Invalid overrides or backend configuration
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
