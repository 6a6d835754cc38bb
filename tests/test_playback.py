import numpy as np
import pytest

from accessai.audio.playback import PlaybackScheduler

from .conftest import FakeClock


def tenth_of_a_second(value=0.5):
    return np.full(2400, value, dtype=np.float32)


@pytest.fixture
def clock():
    return FakeClock(100.0)


@pytest.fixture
def scheduler(clock):
    return PlaybackScheduler(sample_rate=24000, clock=clock)


def test_frames_play_back_to_back(scheduler):
    first = scheduler.schedule(tenth_of_a_second())
    second = scheduler.schedule(tenth_of_a_second())
    assert first.start == pytest.approx(100.0)
    assert second.start == pytest.approx(first.end)
    assert scheduler.next_start == pytest.approx(100.2)


def test_idle_scheduler_starts_at_now(scheduler, clock):
    scheduler.schedule(tenth_of_a_second())
    clock.advance(1.0)
    frame = scheduler.schedule(tenth_of_a_second())
    assert frame.start == pytest.approx(101.0)


def test_barge_in_drops_unplayed_frames(scheduler, clock):
    scheduler.schedule(tenth_of_a_second())
    scheduler.schedule(tenth_of_a_second())
    scheduler.schedule(tenth_of_a_second())
    clock.advance(0.05)

    dropped = scheduler.barge_in()

    assert dropped == 2
    (remaining,) = scheduler.pending_frames()
    assert len(remaining.samples) == 1200
    assert remaining.end == pytest.approx(100.05)
    assert scheduler.next_start == pytest.approx(100.05)


def test_after_barge_in_new_audio_starts_immediately(scheduler, clock):
    scheduler.schedule(tenth_of_a_second())
    scheduler.schedule(tenth_of_a_second())
    clock.advance(0.01)
    scheduler.barge_in()
    frame = scheduler.schedule(tenth_of_a_second())
    assert frame.start == pytest.approx(100.01)


def test_render_mixes_the_current_window(scheduler, clock):
    scheduler.schedule(tenth_of_a_second(0.25))
    out = scheduler.render(1200)
    assert out.shape == (1200,)
    assert np.allclose(out, 0.25)

    clock.advance(0.2)
    assert np.allclose(scheduler.render(1200), 0.0)
    assert scheduler.pending_frames() == []


def test_render_places_future_frames_at_their_offset(scheduler, clock):
    scheduler.next_start = 100.025
    scheduler.schedule(tenth_of_a_second(0.5))
    out = scheduler.render(1200)
    assert np.allclose(out[:600], 0.0)
    assert np.allclose(out[600:], 0.5)


def test_is_playing_and_clear(scheduler, clock):
    assert not scheduler.is_playing()
    scheduler.schedule(tenth_of_a_second())
    assert scheduler.is_playing()
    scheduler.clear()
    assert not scheduler.is_playing()
    assert scheduler.pending_frames() == []
