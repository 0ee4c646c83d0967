from __future__ import annotations

import io
import struct
from dataclasses import dataclass
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from .errors import DecodeError

# signature+version, logical screen width/height, packed flags, background, aspect
_SCREEN_DESCRIPTOR = struct.Struct("<6sHHBBB")
# left, top, width, height, packed flags
_IMAGE_DESCRIPTOR = struct.Struct("<HHHHB")

_PILLOW_ERRORS = (
    UnidentifiedImageError,
    Image.DecompressionBombError,
    OSError,
    EOFError,
    SyntaxError,
    ValueError,
)


@dataclass
class Dimension:
    width: int
    height: int


@dataclass
class RawFrame:
    """One source frame: its placement on the canvas, delay and RGBA pixels."""

    left: int
    top: int
    width: int
    height: int
    delay: int
    rgba: bytes


def _read_screen_descriptor(data: bytes) -> Tuple[int, int, bytes]:
    """Return (width, height, global_palette) from the GIF header bytes."""
    if len(data) < _SCREEN_DESCRIPTOR.size:
        raise DecodeError("Truncated GIF header")
    signature, width, height, flags, _background, _aspect = _SCREEN_DESCRIPTOR.unpack_from(data)
    if not signature.startswith(b"GIF"):
        raise DecodeError("Unrecognized file signature")

    palette = b""
    if flags & 0x80:
        size = 3 << ((flags & 0x07) + 1)
        start = _SCREEN_DESCRIPTOR.size
        palette = bytes(data[start : start + size])
        if len(palette) != size:
            raise DecodeError("Truncated global color table")
    return width, height, palette


class DecodeSession:
    """Sequential frame reader over an in-memory GIF.

    Pillow only exposes frames already composited onto its own canvas, with
    the previous frame's disposal applied. To hand out each frame's own
    pixels, the session walks the block structure, copies every image block
    (with its graphic control extension) into a one-frame GIF sharing the
    original header, and lets Pillow decode that. Transparent pixels come out
    with alpha 0.
    """

    def __init__(self, data: bytes) -> None:
        try:
            Image.open(io.BytesIO(data), formats=["GIF"]).close()
        except _PILLOW_ERRORS as exc:
            raise DecodeError(f"Could not read GIF header: {exc}") from exc

        self._data = data
        self._width, self._height, self._global_palette = _read_screen_descriptor(data)
        self._header = data[: _SCREEN_DESCRIPTOR.size + len(self._global_palette)]
        self._pos = len(self._header)
        self._index = 0

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def global_palette(self) -> bytes:
        return self._global_palette

    def _read(self, size: int) -> bytes:
        chunk = self._data[self._pos : self._pos + size]
        if len(chunk) != size:
            raise DecodeError(f"Unexpected end of GIF data in frame {self._index}")
        self._pos += size
        return chunk

    def _skip_sub_blocks(self) -> None:
        while True:
            size = self._read(1)[0]
            if size == 0:
                break
            self._read(size)

    def _next_image_block(self) -> Optional[Tuple[bytes, bytes, Tuple[int, int, int, int]]]:
        """Return (control extension, image block, extent) of the next frame, or None."""
        control = b""
        while self._pos < len(self._data):
            start = self._pos
            introducer = self._read(1)
            if introducer == b"!":
                label = self._read(1)[0]
                self._skip_sub_blocks()
                if label == 0xF9:
                    control = self._data[start : self._pos]
            elif introducer == b",":
                left, top, width, height, flags = _IMAGE_DESCRIPTOR.unpack(self._read(_IMAGE_DESCRIPTOR.size))
                if flags & 0x80:
                    self._read(3 << ((flags & 0x07) + 1))
                self._read(1)  # LZW minimum code size
                self._skip_sub_blocks()
                return control, self._data[start : self._pos], (left, top, width, height)
            elif introducer == b";":
                break
            # stray bytes between blocks are ignored, as Pillow does
        return None

    def _decode_block(self, control: bytes, block: bytes, box: Tuple[int, int, int, int]) -> bytes:
        single = self._header + control + block + b";"
        try:
            with Image.open(io.BytesIO(single), formats=["GIF"]) as image:
                return image.convert("RGBA").crop(box).tobytes()
        except _PILLOW_ERRORS as exc:
            raise DecodeError(f"Could not decode frame {self._index}: {exc}") from exc

    def next_frame(self) -> Optional[RawFrame]:
        """Decode the next frame, or return None once the stream is exhausted."""
        found = self._next_image_block()
        if found is None:
            return None

        control, block, (left, top, width, height) = found
        # introducer, label, block size, packed flags, then the delay
        delay = struct.unpack_from("<H", control, 4)[0] if len(control) >= 8 else 0
        rgba = self._decode_block(control, block, (left, top, left + width, top + height))
        self._index += 1

        return RawFrame(left=left, top=top, width=width, height=height, delay=delay, rgba=rgba)

    def close(self) -> None:
        self._data = b""

    def __enter__(self) -> "DecodeSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def open_session(data: bytes) -> DecodeSession:
    return DecodeSession(bytes(data))


def read_metadata(session: DecodeSession) -> Tuple[int, int, bytes]:
    """Return (width, height, global_palette); the palette is empty when absent."""
    return session.width, session.height, session.global_palette or b""
