"""Audio encoding, playback scheduling and device I/O."""

from .codec import AudioFramer, decode_frame, encode_frame
from .playback import PlaybackScheduler, ScheduledFrame

__all__ = [
    "AudioFramer",
    "PlaybackScheduler",
    "ScheduledFrame",
    "decode_frame",
    "encode_frame",
]
