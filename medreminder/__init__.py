"""Medication reminder scheduling and adherence engine."""

__version__ = "1.0.0"
