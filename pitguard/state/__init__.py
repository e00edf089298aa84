"""
Authoritative in-memory site state for PitGuard.
"""

from .world import WorldState

__all__ = ["WorldState"]
