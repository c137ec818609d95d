"""Layered question routing."""

from .service import Router, RouterConfig

__all__ = ["Router", "RouterConfig"]
