"""
Live state stream for PitGuard.

Typed stream events, the server-side broadcast channel and the
client-side subscription handler with its live state reducer.
"""

from .broadcast import BroadcastChannel, Subscription
from .events import StreamEvent, decode, encode
from .live_state import LiveState
from .subscriber import StreamSubscriber

__all__ = ["BroadcastChannel", "Subscription", "StreamEvent", "decode", "encode", "LiveState", "StreamSubscriber"]
