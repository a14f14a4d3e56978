"""SQLAlchemy models for calls, analyses and coaching plans."""

from .base import Base
from .analysis import Analysis  # noqa: F401
from .call import Call  # noqa: F401
from .coaching import Coaching  # noqa: F401

__all__ = [
    "Base",
    "Call",
    "Analysis",
    "Coaching",
]
