"""Geographic point model."""

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import InvalidCoordinate


class Location(BaseModel):
    """A WGS84 point. Out-of-range or non-finite values never validate."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90, allow_inf_nan=False, description="Latitude in degrees")
    longitude: float = Field(..., ge=-180, le=180, allow_inf_nan=False, description="Longitude in degrees")

    @classmethod
    def parse(cls, latitude, longitude) -> "Location":
        """Build a Location from loosely typed input.

        Raises:
            InvalidCoordinate: if either value is missing, not numeric,
                non-finite or out of range.
        """
        try:
            return cls(latitude=latitude, longitude=longitude)
        except ValidationError as exc:
            reason = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
            )
            raise InvalidCoordinate(latitude, longitude, reason) from exc

    def as_tuple(self) -> tuple[float, float]:
        """Return (lat, lng)."""
        return (self.latitude, self.longitude)

    def format_coordinates(self, precision: int = 4) -> str:
        """Human readable form with hemisphere letters, e.g. ``35.6762° N / 139.6503° E``."""
        ns = "N" if self.latitude >= 0 else "S"
        ew = "E" if self.longitude >= 0 else "W"
        return (
            f"{abs(self.latitude):.{precision}f}° {ns} / "
            f"{abs(self.longitude):.{precision}f}° {ew}"
        )
