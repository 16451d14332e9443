"""Tests for location and place label models."""

import math

import pytest
from pydantic import ValidationError

from citypaper.errors import InvalidCoordinate
from citypaper.models.location import Location
from citypaper.models.place import (
    DEFAULT_ACCENT_COLOR,
    FALLBACK_NAME,
    RESOLVING_NAME,
    PlaceLabel,
    PlaceResult,
    normalize_hex_color,
)


class TestLocation:
    """Test coordinate validation."""

    def test_valid(self):
        loc = Location.parse(35.6762, 139.6503)
        assert loc.as_tuple() == (35.6762, 139.6503)

    def test_bounds_are_inclusive(self):
        assert Location.parse(90, 180).latitude == 90
        assert Location.parse(-90, -180).longitude == -180

    @pytest.mark.parametrize(
        "lat,lng",
        [(91, 0), (-90.5, 0), (0, 180.01), (0, -181), (math.nan, 0), (0, math.inf), ("north", 0), (None, 0)],
    )
    def test_invalid_raises_invalid_coordinate(self, lat, lng):
        with pytest.raises(InvalidCoordinate):
            Location.parse(lat, lng)

    def test_invalid_coordinate_is_value_error(self):
        with pytest.raises(ValueError, match="Invalid coordinate"):
            Location.parse(100, 0)

    def test_direct_construction_validates(self):
        with pytest.raises(ValidationError):
            Location(latitude=200, longitude=0)

    def test_frozen(self):
        loc = Location.parse(1, 2)
        with pytest.raises(ValidationError):
            loc.latitude = 3

    def test_format_coordinates_hemispheres(self):
        assert Location.parse(35.6762, 139.6503).format_coordinates() == "35.6762° N / 139.6503° E"
        assert Location.parse(-33.8688, -70.6693).format_coordinates() == "33.8688° S / 70.6693° W"


class TestPlaceLabel:
    """Test label model."""

    def test_defaults(self):
        label = PlaceLabel()
        assert label.display_name == FALLBACK_NAME
        assert label.accent_color == DEFAULT_ACCENT_COLOR

    def test_short_hex_expanded(self):
        assert PlaceLabel(accent_color="#F05").accent_color == "#ff0055"

    def test_bad_color_rejected(self):
        with pytest.raises(ValidationError):
            PlaceLabel(accent_color="red")

    def test_resolving_sentinel(self):
        label = PlaceLabel().with_name(RESOLVING_NAME)
        assert label.is_resolving
        assert not label.with_name("Kyoto").is_resolving

    def test_normalize_adds_hash(self):
        assert normalize_hex_color("00FF00") == "#00ff00"


class TestPlaceResult:
    """Test search result conversion."""

    def test_to_location_and_label(self):
        result = PlaceResult(
            name="Kyoto",
            country="Japan",
            latitude=35.0116,
            longitude=135.7681,
            description="Temples in morning mist",
            accent_color="#c0392b",
        )
        assert result.to_location() == Location(latitude=35.0116, longitude=135.7681)
        label = result.to_label()
        assert label.display_name == "Kyoto"
        assert label.accent_color == "#c0392b"

    def test_unusable_accent_falls_back(self):
        assert PlaceResult(accent_color="crimson").to_label().accent_color == DEFAULT_ACCENT_COLOR

    def test_out_of_range_coordinates(self):
        with pytest.raises(InvalidCoordinate):
            PlaceResult(latitude=120).to_location()
