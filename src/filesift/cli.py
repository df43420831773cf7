# src/filesift/cli.py
import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from filesift.config import EngineConfig, MAX_FILE_SIZE, SCAN_TIMEOUT_SECONDS
from filesift.core.tree import render_file_tree
from filesift.engine import ScanEngine
from filesift.models import IgnoreMode, ScanEvent, ScanStatus


def create_arg_parser():
    parser = argparse.ArgumentParser(
        description="Scan a directory and list the files selectable for an LLM context, honoring ignore rules."
    )
    parser.add_argument("root_dir", type=str, nargs="?", default=os.getcwd(), help="Directory to scan")
    parser.add_argument(
        "-m", "--mode",
        choices=[m.value for m in IgnoreMode],
        default=IgnoreMode.AUTOMATIC.value,
        help="automatic: .gitignore files + built-in defaults; global: static exclude list + --ignore patterns",
    )
    parser.add_argument(
        "-i", "--ignore",
        action="append",
        default=[],
        metavar="PATTERN",
        help="Extra ignore pattern (global mode only, repeatable)",
    )
    parser.add_argument(
        "--max-size", type=float, default=MAX_FILE_SIZE / (1024 * 1024),
        help="Largest file to read, in MB (default: %(default)s)",
    )
    parser.add_argument(
        "--timeout", type=float, default=SCAN_TIMEOUT_SECONDS,
        help="Give up after this many seconds (default: %(default)s)",
    )
    parser.add_argument("--patterns", action="store_true", help="Print the resolved ignore patterns and exit")
    parser.add_argument("--tree", action="store_true", help="Print the tree of selectable files")
    parser.add_argument("--json", action="store_true", help="Print file records as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def print_progress(event: ScanEvent):
    if event.status is ScanStatus.PROCESSING:
        print(
            f"\rScanning... {event.directories_processed} dirs, {event.files_processed} files",
            end="", file=sys.stderr, flush=True,
        )
    else:
        print(file=sys.stderr)


async def run(args) -> int:
    root_dir = Path(args.root_dir).resolve()
    if not root_dir.is_dir():
        print(f"Error: Invalid directory '{root_dir}'", file=sys.stderr)
        return 1

    config = EngineConfig(
        max_file_size=int(args.max_size * 1024 * 1024),
        scan_timeout=args.timeout,
    )
    engine = ScanEngine(config)

    if args.patterns:
        result = await engine.get_ignore_patterns(str(root_dir), args.mode, args.ignore)
        if "error" in result:
            print(f"Error: {result['error']}", file=sys.stderr)
            return 1
        print(json.dumps(result["patterns"], indent=2))
        return 0

    print("--- filesift ---", file=sys.stderr)
    print(f"Scanning: {root_dir}", file=sys.stderr)
    print(f"Mode:     {args.mode}", file=sys.stderr)

    try:
        result = await engine.start_scan(str(root_dir), args.mode, args.ignore, on_event=print_progress)
    except asyncio.CancelledError:
        # Ctrl+C: asyncio.run cancels this task
        engine.cancel_scan()
        raise

    if result.status is not ScanStatus.COMPLETE:
        print(f"Scan {result.status.value}: {result.error or 'no result'}", file=sys.stderr)
        return 1

    records = sorted(result.records, key=lambda r: r.token_count, reverse=True)

    if args.json:
        print(json.dumps([r.to_dict() for r in records], indent=2))
        return 0

    if args.tree:
        print(render_file_tree(records, root_dir.name or "project"))

    print("--- Top 10 Largest Files (Est. Tokens) ---")
    print(f"{'Rank':<5} | {'Tokens':<10} | {'File Path'}")
    print("-" * 60)
    for i, f in enumerate(records[:10]):
        print(f"{i+1:<5} | {f.token_count:<10} | {f.rel_path}")
    print("-" * 60)
    print(f"Total files:  {len(records)}")
    print(f"Binary files: {sum(1 for r in records if r.is_binary)}")
    print(f"Skipped:      {sum(1 for r in records if r.is_skipped)}")
    print(f"Total tokens: {result.total_tokens}")
    print("-" * 60)
    return 0


def main():
    parser = create_arg_parser()
    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        exit_code = asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\nCancelled.", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"An unexpected error occurred: {e}", file=sys.stderr)
        sys.exit(1)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
