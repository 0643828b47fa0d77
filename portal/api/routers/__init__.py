"""API routers for the submission portal."""

from . import catalog
from . import modifications

__all__ = [
    "catalog",
    "modifications",
]
