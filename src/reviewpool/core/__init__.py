"""Reviewpool core library - models, storage and the assignment engine."""
# Export main components
from . import models
from . import schemas
from . import storage
from . import integrations
from . import config
from . import pool
from . import penalties
from . import deadlines

__all__ = [
    "models",
    "schemas",
    "storage",
    "integrations",
    "config",
    "pool",
    "penalties",
    "deadlines",
]
