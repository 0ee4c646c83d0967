from __future__ import annotations

from typing import Optional


class ReverserError(Exception):
    """Base class for failures surfaced by the reversal pipeline."""


class DecodeError(ReverserError):
    """Malformed header or a frame that could not be decoded.

    ``frame_index`` is the index of the last frame that was composited
    successfully before the failure (``-1`` when none was), or ``None`` when
    the failure happened before any frame was read.
    """

    def __init__(self, message: str, frame_index: Optional[int] = None) -> None:
        super().__init__(message)
        self.frame_index = frame_index


class EncodeError(ReverserError):
    """Writing the reversed stream failed."""


class CallbackError(ReverserError):
    """A host supplied callback raised."""
