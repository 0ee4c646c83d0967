from __future__ import annotations

import io
from typing import Callable, Optional, Sequence, Tuple

from PIL import GifImagePlugin, Image

from .compositor import FrameSnapshot
from .errors import EncodeError

# each written frame is a full canvas, so nothing from the previous one may show through
_RESTORE_TO_BACKGROUND = 2


def _palette_colors(palette: bytes) -> set:
    usable = len(palette) - len(palette) % 3
    return {tuple(palette[i : i + 3]) for i in range(0, usable, 3)}


class EncodeSession:
    """Writes an animated GIF one image block per frame, using Pillow's GIF writer.

    Frames go straight into the output buffer as they arrive, so no two frames
    are ever merged and every frame keeps its own delay.
    """

    def __init__(self, width: int, height: int, palette: bytes = b"") -> None:
        self.width = width
        self.height = height
        self._palette = palette[: len(palette) - len(palette) % 3]
        self._loop: Optional[int] = None
        self._buffer = io.BytesIO()
        self._frames_written = 0

        self._palette_image: Optional[Image.Image] = None
        self._palette_colors: set = set()
        if self._palette:
            self._palette_image = Image.new("P", (1, 1))
            self._palette_image.putpalette(self._palette)
            self._palette_colors = _palette_colors(self._palette)

    def set_loop(self, infinite: bool = True) -> None:
        if self._frames_written:
            raise EncodeError("Looping must be configured before the first frame")
        # loop=0 writes the NETSCAPE2.0 extension with an infinite repeat count
        self._loop = 0 if infinite else None

    def _write_header(self) -> None:
        screen = Image.new("P", (self.width, self.height))
        if self._palette:
            screen.putpalette(self._palette)
        info = {} if self._loop is None else {"loop": self._loop}
        header, _ = GifImagePlugin.getheader(screen, info=info)
        for chunk in header:
            self._buffer.write(chunk)

    def _reduce(self, image: Image.Image) -> Tuple[Image.Image, Optional[int]]:
        """Return a palette image for the frame and its transparent index, if any.

        An opaque frame whose colors all appear in the global palette is mapped
        onto it without loss; anything else gets an adaptive palette from Pillow.
        """
        opaque = image.getchannel("A").getextrema()[0] == 255
        if opaque and self._palette_image is not None:
            rgb = image.convert("RGB")
            colors = rgb.getcolors(maxcolors=256)
            if colors is not None and all(color in self._palette_colors for _, color in colors):
                return rgb.quantize(palette=self._palette_image, dither=Image.Dither.NONE), None

        frame = image.convert("P", palette=Image.Palette.ADAPTIVE)
        transparency = None
        if frame.palette.mode == "RGBA":
            for rgba, index in frame.palette.colors.items():
                if rgba[3] == 0:
                    transparency = index
                    break
        # the local color table is written as RGB triplets
        frame.putpalette(frame.getpalette("RGB"))
        return frame, transparency

    def write_frame(self, rgba: bytes, width: int, height: int, delay: int) -> None:
        if (width, height) != (self.width, self.height):
            raise EncodeError(
                f"Frame is {width}x{height} but the stream is {self.width}x{self.height}"
            )
        number = self._frames_written + 1
        try:
            image = Image.frombytes("RGBA", (width, height), bytes(rgba))
            frame, transparency = self._reduce(image)
            params = {
                # GIF delays are in hundredths of a second, Pillow durations in milliseconds
                "duration": int(delay) * 10,
                "disposal": _RESTORE_TO_BACKGROUND,
                "include_color_table": True,
            }
            if transparency is not None:
                params["transparency"] = transparency
            chunks = GifImagePlugin.getdata(frame, (0, 0), **params)
        except (OSError, ValueError, KeyError) as exc:
            raise EncodeError(f"Could not write frame {number}: {exc}") from exc

        if not self._frames_written:
            self._write_header()
        for chunk in chunks:
            self._buffer.write(chunk)
        self._frames_written = number

    def finish(self) -> bytes:
        if not self._frames_written:
            raise EncodeError("No frames were written")
        self._buffer.write(b";")
        return self._buffer.getvalue()


def encode_frames(
    frames: Sequence[FrameSnapshot],
    width: int,
    height: int,
    global_palette: bytes,
    stream_id: str,
    report: Callable[[str, int], None],
) -> bytes:
    """Encode snapshots into a looping GIF, calling ``report(stream_id, n)`` after each frame is written."""
    session = EncodeSession(width, height, global_palette)
    session.set_loop(True)

    for index, frame in enumerate(frames, start=1):
        session.write_frame(frame.rgba, frame.width, frame.height, frame.delay)
        report(stream_id, index)

    return session.finish()
