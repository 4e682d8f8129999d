"""Routers package."""

from . import (
    health,
    auth,
    items,
    profile,
)
