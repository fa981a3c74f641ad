"""ttv-toaster: Twitch event and chat relay for stream overlays."""

__version__ = "1.0.0"
