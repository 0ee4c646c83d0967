from __future__ import annotations

from dataclasses import dataclass
from typing import List

import numpy as np

from .decoding import RawFrame
from .errors import DecodeError


@dataclass
class FrameSnapshot:
    """Full canvas state right after one source frame was composited."""

    width: int
    height: int
    rgba: bytes
    delay: int


def _paint(canvas: "np.ndarray", frame: RawFrame) -> None:
    """Copy the frame's non-transparent pixels onto the canvas at (left, top).

    Pixels with alpha 0 leave the canvas untouched; a frame only ever adds to
    what is already there. Pixels outside the canvas are clipped.
    """
    expected = frame.width * frame.height * 4
    if len(frame.rgba) != expected:
        raise DecodeError(
            f"Frame buffer holds {len(frame.rgba)} bytes, expected {expected} "
            f"for a {frame.width}x{frame.height} frame"
        )
    if expected == 0:
        return

    canvas_h, canvas_w = canvas.shape[:2]
    top, left = frame.top, frame.left
    bottom = min(top + frame.height, canvas_h)
    right = min(left + frame.width, canvas_w)
    if bottom <= top or right <= left:
        return

    pixels = np.frombuffer(frame.rgba, dtype=np.uint8).reshape(frame.height, frame.width, 4)
    patch = pixels[: bottom - top, : right - left]
    region = canvas[top:bottom, left:right]
    opaque = patch[:, :, 3] != 0
    region[opaque] = patch[opaque]


def composite_frames(session, width: int, height: int) -> List[FrameSnapshot]:
    """
    Walk every frame of a decode session and return one full-canvas snapshot per frame.

    GIF frames frequently carry only the sub-rectangle that changed since the
    previous frame, so each frame is painted onto a persistent canvas and the
    canvas is copied after every frame. Disposal methods are not applied: the
    canvas only accumulates, which is correct for most forward animations but
    may leave artifacts once the sequence is reversed.

    Args:
        session: Object with a ``next_frame()`` method returning ``RawFrame`` or None.
        width: Canvas width from the logical screen descriptor.
        height: Canvas height from the logical screen descriptor.

    Raises:
        DecodeError: A frame could not be decoded; ``frame_index`` is the last
            frame composited successfully.
    """
    canvas = np.zeros((height, width, 4), dtype=np.uint8)
    snapshots: List[FrameSnapshot] = []

    while True:
        try:
            frame = session.next_frame()
            if frame is None:
                break
            _paint(canvas, frame)
        except DecodeError as exc:
            last_good = len(snapshots) - 1
            raise DecodeError(
                f"Decoding stopped after frame {last_good}: {exc}", frame_index=last_good
            ) from exc

        # the canvas keeps changing with every following frame
        snapshots.append(
            FrameSnapshot(width=width, height=height, rgba=canvas.tobytes(), delay=frame.delay)
        )

    return snapshots


def reverse_frames(frames: List[FrameSnapshot]) -> List[FrameSnapshot]:
    """Reverse the snapshots in place and return the same list."""
    frames.reverse()
    return frames
