"""Duty Alarm Bridge: chat alarms escalated to on-call duty officers."""

__version__ = "0.1.0"
