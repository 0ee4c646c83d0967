import pytest

from conftest import BLUE, CLEAR, CLEAR_PALETTE, RED, build_gif, read_frames, solid
from reverser.errors import CallbackError, DecodeError
from reverser.pipeline import probe, reverse_gif


def test_reverse_red_blue_scenario(red_blue_gif):
    output = reverse_gif("id-1", "anim.gif", red_blue_gif, lambda *a: None, lambda *a: None)
    decoded = read_frames(output)
    assert [pixels for pixels, _ in decoded] == [[BLUE] * 4, [RED] * 4]
    assert [duration for _, duration in decoded] == [250, 100]
    assert probe(output).width == 2


def test_register_fires_once_before_progress(red_blue_gif):
    events = []
    reverse_gif(
        "id-2",
        "anim.gif",
        red_blue_gif,
        lambda *args: events.append(("register",) + args),
        lambda *args: events.append(("progress",) + args),
    )
    assert events == [
        ("register", "id-2", "anim.gif", 2),
        ("progress", "id-2", 1),
        ("progress", "id-2", 2),
    ]


def test_partial_frames_are_composited_before_reversal():
    canvas = solid(0, width=4, height=4)
    with_square = [row[:] for row in canvas]
    for row in (1, 2):
        for col in (1, 2):
            with_square[row][col] = 2
    data = build_gif([canvas, with_square], durations=[30, 60])

    output = reverse_gif("id-3", "square.gif", data, lambda *a: None, lambda *a: None)
    first, second = read_frames(output)
    expected = [BLUE if r in (1, 2) and c in (1, 2) else RED for r in range(4) for c in range(4)]
    assert first[0] == expected
    assert second[0] == [RED] * 16
    assert (first[1], second[1]) == (60, 30)


def test_log_receives_step_messages(red_blue_gif):
    messages = []
    reverse_gif("id-4", "anim.gif", red_blue_gif, lambda *a: None, lambda *a: None, log=messages.append)
    assert messages[0].startswith("Decoding anim.gif")
    assert "Composited 2 frames" in messages


def test_malformed_input_fires_no_callbacks():
    events = []
    with pytest.raises(DecodeError):
        reverse_gif("id-5", "bad.gif", b"GIF89a\x01", events.append, events.append)
    assert events == []


def test_failing_register_callback_is_propagated(red_blue_gif):
    progress = []

    def on_register(stream_id, name, total):
        raise RuntimeError("ui gone")

    with pytest.raises(CallbackError) as info:
        reverse_gif("id-6", "anim.gif", red_blue_gif, on_register, lambda *a: progress.append(a))
    assert isinstance(info.value.__cause__, RuntimeError)
    assert progress == []


def test_failing_progress_callback_is_propagated(red_blue_gif):
    def on_progress(stream_id, frames_written):
        if frames_written == 2:
            raise ValueError("stop")

    with pytest.raises(CallbackError):
        reverse_gif("id-7", "anim.gif", red_blue_gif, lambda *a: None, on_progress)


def test_every_snapshot_becomes_its_own_output_frame():
    data = build_gif(
        [solid(0), solid(2), solid(CLEAR)],
        durations=[100, 200, 300],
        palette=CLEAR_PALETTE,
        transparency=CLEAR,
    )
    events = []
    output = reverse_gif("id-8", "fade.gif", data, lambda *a: events.append(a), lambda *a: events.append(a))

    decoded = read_frames(output)
    assert len(decoded) == 3
    assert [duration for _, duration in decoded] == [300, 200, 100]
    assert [pixels for pixels, _ in decoded] == [[BLUE] * 4, [BLUE] * 4, [RED] * 4]
    assert events[0] == ("id-8", "fade.gif", 3)
    assert events[1:] == [("id-8", 1), ("id-8", 2), ("id-8", 3)]
