"""
Core domain models and pure functions for PitGuard.

This package contains the domain models and business logic (risk
engine, occupancy, compliance log, sensor health) that are independent
of external I/O and infrastructure concerns.
"""
