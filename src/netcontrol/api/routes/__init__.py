"""Route group exports."""

from . import events, health, logs, realtime

__all__ = ["events", "health", "logs", "realtime"]
