"""API route modules."""
from . import assignments, deadlines

__all__ = [
    "assignments",
    "deadlines",
]
