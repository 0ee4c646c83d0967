from __future__ import annotations

import argparse
import sys
import uuid
from pathlib import Path
from typing import Dict, List, Optional

from .errors import ReverserError
from .pipeline import probe, reverse_gif


def run_reversal(input_path: Path, output_dir: Path) -> Path:
    input_path = input_path.expanduser().resolve()
    output_dir = output_dir.expanduser().resolve()
    output_dir.mkdir(parents=True, exist_ok=True)

    if not input_path.exists():
        raise FileNotFoundError(f"Input GIF not found: {input_path}")

    output_path = (output_dir / f"{input_path.stem}_reversed.gif").resolve()
    print(f"[1/3] Reading {input_path}")
    data = input_path.read_bytes()

    totals: Dict[str, int] = {}

    def on_register(stream_id: str, name: str, total_frames: int) -> None:
        totals[stream_id] = total_frames
        print(f"[2/3] Reversing {total_frames} frames of {name}")

    def on_progress(stream_id: str, frames_written: int) -> None:
        print(f"  frame {frames_written}/{totals[stream_id]}")

    reversed_bytes = reverse_gif(
        uuid.uuid4().hex, input_path.name, data, on_register, on_progress
    )

    print(f"[3/3] Writing {output_path}")
    output_path.write_bytes(reversed_bytes)
    return output_path


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Reverse the frame order of animated GIFs, keeping size, palette and timing.",
    )
    parser.add_argument("gifs", nargs="+", help="Paths to GIF files")
    parser.add_argument(
        "--output-dir",
        type=str,
        default="data/output",
        help="Directory for reversed GIFs (written as <stem>_reversed.gif)",
    )
    parser.add_argument(
        "--probe",
        action="store_true",
        help="Only print the canvas size of each GIF",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)

    status = 0
    for gif in args.gifs:
        path = Path(gif)
        try:
            if args.probe:
                dimension = probe(path.expanduser().read_bytes())
                print(f"{path}: {dimension.width}x{dimension.height}")
            else:
                output = run_reversal(path, Path(args.output_dir))
                print(f"Done: {output}")
        except (ReverserError, OSError) as exc:
            print(f"Error: {path}: {exc}", file=sys.stderr)
            status = 1
    return status


if __name__ == "__main__":
    raise SystemExit(main())
