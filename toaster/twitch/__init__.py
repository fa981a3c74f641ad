"""Twitch ingestion connections."""

from .base import Listener
from .chat import ChatListener
from .eventsub import EventSubListener

__all__ = ["ChatListener", "EventSubListener", "Listener"]
