from __future__ import annotations

from typing import Callable, Optional

from .errors import CallbackError

RegisterCallback = Callable[[str, str, int], None]
ProgressCallback = Callable[[str, int], None]


class ProgressReporter:
    """Two-phase host notification for one reversal.

    ``register`` fires exactly once with the total frame count, after which
    ``progress`` fires once per written frame with indices 1, 2, ... in order.
    Exceptions raised by the host callbacks are re-raised as CallbackError.
    """

    def __init__(
        self,
        stream_id: str,
        name: str,
        on_register: RegisterCallback,
        on_progress: ProgressCallback,
    ) -> None:
        self.stream_id = stream_id
        self.name = name
        self._on_register = on_register
        self._on_progress = on_progress
        self.total_frames: Optional[int] = None
        self.frames_written = 0

    @staticmethod
    def _call(label: str, callback: Callable, *args) -> None:
        try:
            callback(*args)
        except Exception as exc:
            raise CallbackError(f"{label} callback failed: {exc}") from exc

    def register(self, total_frames: int) -> None:
        if self.total_frames is not None:
            raise RuntimeError(f"Stream {self.stream_id} was already registered")
        self.total_frames = total_frames
        self._call("register", self._on_register, self.stream_id, self.name, total_frames)

    def progress(self, stream_id: str, frames_written: int) -> None:
        if self.total_frames is None:
            raise RuntimeError("Progress reported before the frame count was registered")
        if frames_written != self.frames_written + 1 or frames_written > self.total_frames:
            raise RuntimeError(
                f"Out of order progress {frames_written} after {self.frames_written}"
                f" of {self.total_frames}"
            )
        self.frames_written = frames_written
        self._call("progress", self._on_progress, stream_id, frames_written)
