from __future__ import annotations

import io
from typing import List, Optional, Sequence, Tuple

import pytest
from PIL import Image

from reverser.decoding import RawFrame
from reverser.errors import DecodeError

RED = (255, 0, 0)
GREEN = (0, 255, 0)
BLUE = (0, 0, 255)
PALETTE = [RED, GREEN, BLUE]
# index 3 is used as the transparent color where a test needs one
CLEAR_PALETTE = PALETTE + [(0, 0, 0)]
CLEAR = 3


def build_gif(
    frames: Sequence[Sequence[Sequence[int]]],
    durations: Optional[List[int]] = None,
    palette: Sequence[Tuple[int, int, int]] = PALETTE,
    **save_params,
) -> bytes:
    """Build an animated GIF from frames given as rows of palette indices."""
    flat_palette = [channel for color in palette for channel in color]
    images = []
    for rows in frames:
        height, width = len(rows), len(rows[0])
        image = Image.new("P", (width, height))
        image.putpalette(flat_palette)
        image.putdata([index for row in rows for index in row])
        images.append(image)

    params = {"format": "GIF", "save_all": True, "append_images": images[1:], "optimize": False, "loop": 0}
    if durations is not None:
        params["duration"] = durations
    params.update(save_params)
    buffer = io.BytesIO()
    images[0].save(buffer, **params)
    return buffer.getvalue()


def solid(index: int, width: int = 2, height: int = 2):
    return [[index] * width for _ in range(height)]


def pixels_of(image: Image.Image) -> list:
    width, height = image.size
    return [image.getpixel((x, y)) for y in range(height) for x in range(width)]


def read_frames(data: bytes) -> List[Tuple[List[Tuple[int, int, int]], int]]:
    """Decode a GIF with Pillow into (rgb pixels, duration ms) per frame."""
    result = []
    with Image.open(io.BytesIO(data)) as image:
        for index in range(image.n_frames):
            image.seek(index)
            result.append((pixels_of(image.convert("RGB")), image.info.get("duration", 0)))
    return result


def rgba_frame(left, top, width, height, pixel, delay=0) -> RawFrame:
    return RawFrame(left=left, top=top, width=width, height=height, delay=delay, rgba=bytes(pixel) * (width * height))


class FakeSession:
    """Decode session replaying prepared frames, optionally failing at one index."""

    def __init__(self, frames: List[RawFrame], fail_at: Optional[int] = None) -> None:
        self._frames = list(frames)
        self._fail_at = fail_at
        self._index = 0

    def next_frame(self) -> Optional[RawFrame]:
        if self._fail_at is not None and self._index == self._fail_at:
            raise DecodeError("corrupt LZW data")
        if self._index >= len(self._frames):
            return None
        frame = self._frames[self._index]
        self._index += 1
        return frame


@pytest.fixture
def red_blue_gif() -> bytes:
    return build_gif([solid(0), solid(2)], durations=[100, 250])
