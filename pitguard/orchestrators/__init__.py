"""
Orchestrators for PitGuard.

This module contains the orchestrators that coordinate
the flow between the core domain, the live stream and adapters.
"""
from .alert_dispatch import AlertDispatcher
from .site_monitor import SiteMonitor
from .telemetry_pump import TelemetryPump
from .update_loop import UpdateLoop

__all__ = ["AlertDispatcher", "SiteMonitor", "TelemetryPump", "UpdateLoop"]
