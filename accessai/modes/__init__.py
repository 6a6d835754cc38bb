"""Assistant modes."""

from .clear_context import ClearContextController
from .social_cue import SocialCueController
from .web_sight import WebSightController

__all__ = ["ClearContextController", "SocialCueController", "WebSightController"]
