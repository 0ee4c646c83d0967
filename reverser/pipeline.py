from __future__ import annotations

from typing import Callable, Optional

from .compositor import composite_frames, reverse_frames
from .decoding import Dimension, open_session, read_metadata
from .encoding import encode_frames
from .errors import DecodeError
from .progress import ProgressCallback, ProgressReporter, RegisterCallback


def _quiet(msg: str) -> None:
    pass


def probe(data: bytes) -> Dimension:
    """Read only the GIF header and return the canvas size."""
    with open_session(data) as session:
        width, height, _ = read_metadata(session)
    return Dimension(width=width, height=height)


def reverse_gif(
    stream_id: str,
    name: str,
    data: bytes,
    on_register: RegisterCallback,
    on_progress: ProgressCallback,
    log: Optional[Callable[[str], None]] = None,
) -> bytes:
    """
    Decode a GIF, reverse its frames and return the re-encoded GIF bytes.

    ``on_register(stream_id, name, total_frames)`` fires once after all frames
    are composited and before anything is encoded; ``on_progress(stream_id, n)``
    then fires after each written frame. Both run in-line on the calling thread.

    Raises:
        DecodeError: The input is not a readable GIF.
        EncodeError: Writing the reversed GIF failed.
        CallbackError: One of the host callbacks raised.
    """
    log = log or _quiet
    reporter = ProgressReporter(stream_id, name, on_register, on_progress)

    log(f"Decoding {name} ({len(data)} bytes)")
    with open_session(data) as session:
        width, height, global_palette = read_metadata(session)
        log(f"Canvas {width}x{height}, global palette of {len(global_palette) // 3} colors")
        frames = composite_frames(session, width, height)

    if not frames:
        raise DecodeError("GIF contains no frames", frame_index=-1)
    log(f"Composited {len(frames)} frames")

    reporter.register(len(frames))
    reverse_frames(frames)

    log("Writing reversed frames")
    output = encode_frames(frames, width, height, global_palette, stream_id, reporter.progress)
    log(f"Wrote {len(output)} bytes")
    return output
