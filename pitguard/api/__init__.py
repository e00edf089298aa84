"""
HTTP API for PitGuard.
"""

from .routes import build_router, sse_frames

__all__ = ["build_router", "sse_frames"]
