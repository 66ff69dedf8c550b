"""Textual dashboard for ghdeck."""

from .app import DashApp

__all__ = ["DashApp"]
