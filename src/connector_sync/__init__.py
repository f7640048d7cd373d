"""Connector Sync: task tracking for a small engineering team, stored locally."""

__version__ = "0.1.0"
