"""API routers for CityPaper."""

from . import places, tasks, wallpapers

__all__ = ["wallpapers", "places", "tasks"]
