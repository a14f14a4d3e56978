"""FastAPI routers acting as controllers in the MVC architecture."""

from . import analysis, calls, coaching, events

__all__ = ["analysis", "calls", "coaching", "events"]
