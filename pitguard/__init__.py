"""
PitGuard: open-pit rockfall hazard monitoring.

Risk scoring, evacuation routing, occupancy, compliance logging and a
live state stream for one mine site.
"""

__version__ = "0.3.0"
