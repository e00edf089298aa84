"""
Port interfaces for PitGuard hexagonal architecture.

This module defines the port interfaces (Protocols) that define
the contracts between the core domain and external adapters.
"""

from .notify import AlertSinkPort
from .stream import StreamSourcePort

__all__ = ["AlertSinkPort", "StreamSourcePort"]
