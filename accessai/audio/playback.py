"""
Gapless playback scheduling for streamed response audio.

Decoded frames are placed on a timeline driven by a monotonic clock: each
frame starts at ``max(now, next_start)`` and pushes ``next_start`` forward by
its own duration, so consecutive frames never overlap and never leave gaps
while audio keeps arriving. Barge-in pulls the cursor back to ``now`` and
discards anything that has not played yet.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

import numpy as np

from ..config import SAMPLE_RATE


@dataclass
class ScheduledFrame:
    """One decoded frame placed on the playback timeline."""

    start: float
    samples: np.ndarray
    sample_rate: int = SAMPLE_RATE

    @property
    def duration(self) -> float:
        return len(self.samples) / float(self.sample_rate)

    @property
    def end(self) -> float:
        return self.start + self.duration


class PlaybackScheduler:
    """Timeline of scheduled frames plus the ``next_start`` cursor."""

    def __init__(
        self,
        sample_rate: int = SAMPLE_RATE,
        clock: Optional[Callable[[], float]] = None,
        logger=None,
    ):
        self.sample_rate = sample_rate
        self.clock = clock or time.monotonic
        self.logger = logger or logging.getLogger("AccessAI.PlaybackScheduler")
        self.next_start = 0.0
        self._frames: List[ScheduledFrame] = []
        # Output devices pull from a PortAudio thread.
        self._lock = threading.Lock()

    def schedule(self, samples) -> ScheduledFrame:
        """Place a frame right after the previous one (or now, if idle)."""
        data = np.asarray(samples, dtype=np.float32).reshape(-1)
        with self._lock:
            start = max(self.clock(), self.next_start)
            frame = ScheduledFrame(start=start, samples=data, sample_rate=self.sample_rate)
            self.next_start = frame.end
            self._frames.append(frame)
        return frame

    def barge_in(self) -> int:
        """Truncate pending playback; returns the number of frames dropped."""
        with self._lock:
            now = self.clock()
            self.next_start = now
            kept = []
            dropped = 0
            for frame in self._frames:
                if frame.start >= now:
                    dropped += 1
                    continue
                if frame.end > now:
                    # Cut the frame that is playing right now.
                    played = int(round((now - frame.start) * self.sample_rate))
                    frame = ScheduledFrame(
                        start=frame.start,
                        samples=frame.samples[:played],
                        sample_rate=frame.sample_rate,
                    )
                kept.append(frame)
            self._frames = kept
        if dropped:
            self.logger.debug(f"Barge-in dropped {dropped} scheduled frame(s)")
        return dropped

    def clear(self) -> None:
        """Forget every frame and reset the cursor."""
        with self._lock:
            self._frames = []
            self.next_start = self.clock()

    def render(self, frame_count: int) -> np.ndarray:
        """
        Mix the timeline window ``[now, now + frame_count / rate)`` into a
        buffer for the output device. Frames that have fully played are
        released.
        """
        out = np.zeros(frame_count, dtype=np.float32)
        with self._lock:
            now = self.clock()
            window_end = now + frame_count / float(self.sample_rate)
            remaining = []
            for frame in self._frames:
                if frame.end <= now:
                    continue
                remaining.append(frame)
                if frame.start >= window_end:
                    continue
                src_offset = max(0, int(round((now - frame.start) * self.sample_rate)))
                dst_offset = max(0, int(round((frame.start - now) * self.sample_rate)))
                count = min(frame_count - dst_offset, len(frame.samples) - src_offset)
                if count > 0:
                    out[dst_offset : dst_offset + count] += frame.samples[
                        src_offset : src_offset + count
                    ]
            self._frames = remaining
        return np.clip(out, -1.0, 1.0)

    def pending_frames(self) -> List[ScheduledFrame]:
        with self._lock:
            return list(self._frames)

    def is_playing(self) -> bool:
        """True while any scheduled audio has not finished."""
        with self._lock:
            return self.next_start > self.clock() and bool(self._frames)
