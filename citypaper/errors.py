"""Exception types raised by the wallpaper renderer."""

from typing import Optional


class CityPaperError(Exception):
    """Base class for all CityPaper errors."""


class EngineError(CityPaperError):
    """Tile engine lifecycle failure.

    Terminal for the RenderSurface it happened on: the surface keeps the
    error and must be replaced by a new one.
    """


class EngineUnavailable(EngineError):
    """The tile engine library never became available within the wait bound."""

    def __init__(self, waited: float):
        self.waited = waited
        super().__init__(f"Tile engine not available after {waited:.1f}s")


class AttachFailed(EngineError):
    """The surface handle was invalid, detached or had no size."""


class InvalidCoordinate(CityPaperError, ValueError):
    """Latitude/longitude outside the valid range."""

    def __init__(self, latitude, longitude, reason: Optional[str] = None):
        self.latitude = latitude
        self.longitude = longitude
        message = f"Invalid coordinate ({latitude}, {longitude})"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class CaptureFailed(CityPaperError):
    """Raster conversion of a surface failed.

    The underlying conversion error is chained as ``__cause__``.
    """

    def __init__(self, file_name: str, reason: str):
        self.file_name = file_name
        self.reason = reason
        super().__init__(f"Could not export {file_name}: {reason}. Please try again.")


class ExportInProgress(CityPaperError):
    """Another export is already running on the same surface."""


class GeocodeFailed(CityPaperError):
    """Reverse geocoding lookup failed (transport, HTTP status or payload)."""


class PlaceSearchError(CityPaperError):
    """The generative place search returned something unusable."""
