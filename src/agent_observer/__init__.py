"""Agent Observer: real-time status aggregation for coding agents."""

__version__ = "0.3.0"
